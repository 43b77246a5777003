"""JMESPath assertions -- queries the run record with JMESPath expressions.

Supports 9 operators: eq, ne, gt, gte, lt, lte, exists, contains, regex.
"""

from __future__ import annotations

import re
from typing import Any

import jmespath
import jmespath.exceptions

from anvil.evaluation.evaluators.base import BaseEvaluator, EvaluationContext
from anvil.models.result import EvaluatorResult


def build_run_data(context: EvaluationContext) -> dict:
    """Convert an EvaluationContext into a queryable dict for JMESPath.

    Structure::

        {
            "run": {"status": ..., "failed_stage": ..., "stages": {...}},
            "telemetry": {"tokens_in": ..., "cost_usd": ..., ...},
            "validation": [{"name": ..., "kind": ..., "exit_code": ..., ...}, ...],
            "diff": {"changes": [...], "dependencies": {...}, "manifest": ...},
            "agent": {"success": ..., "tool_calls": [...], ...} | null
        }
    """
    run = context.run
    return {
        "run": {
            "status": run.status.value,
            "failed_stage": run.failed_stage,
            "stages": {name: status.value for name, status in run.stages.items()},
            "tier": run.config.tier,
            "agent": run.config.agent,
            "model": run.config.model,
        },
        "telemetry": run.telemetry.model_dump(),
        "validation": [
            {**r.model_dump(), "succeeded": r.succeeded} for r in context.validation
        ],
        "diff": context.diff.model_dump(mode="json"),
        "agent": context.agent.model_dump(mode="json") if context.agent else None,
    }


def compare(actual: Any, operator: str, expected: Any) -> bool:
    """Apply a comparison operator between actual and expected values.

    Returns False if actual is None (path not found).
    """
    if actual is None:
        return False

    if operator == "eq":
        return actual == expected
    if operator == "ne":
        return actual != expected

    # Numeric comparisons with coercion
    if operator in ("gt", "gte", "lt", "lte"):
        try:
            a = float(actual)
            e = float(expected)
        except (ValueError, TypeError):
            return False
        if operator == "gt":
            return a > e
        if operator == "gte":
            return a >= e
        if operator == "lt":
            return a < e
        # lte
        return a <= e

    if operator == "exists":
        return True  # actual is not None (already checked above)

    if operator == "contains":
        if isinstance(actual, str):
            return str(expected) in actual
        if isinstance(actual, list):
            return expected in actual
        if isinstance(actual, dict):
            return expected in actual
        return False

    if operator == "regex":
        try:
            return re.search(str(expected), str(actual)) is not None
        except re.error:
            return False

    return False


class AssertionsEvaluator(BaseEvaluator):
    """Evaluates the scenario's JMESPath assertions.

    Score is the weighted fraction of assertions that hold.
    """

    evaluator_id = "assertions"
    default_weight = 1.0

    def evaluate(self, context: EvaluationContext) -> EvaluatorResult:
        assertions = context.scenario.assertions
        if not assertions:
            return self.result(1.0, True, "no assertions declared")

        data = build_run_data(context)
        outcomes: list[dict[str, Any]] = []

        for assertion in assertions:
            label = assertion.name or assertion.expression
            try:
                actual = jmespath.search(assertion.expression, data)
            except jmespath.exceptions.JMESPathError as exc:
                outcomes.append(
                    {
                        "name": label,
                        "passed": False,
                        "weight": assertion.weight,
                        "details": f"JMESPath error: {exc}",
                    }
                )
                continue

            passed = compare(actual, assertion.operator, assertion.value)
            outcomes.append(
                {
                    "name": label,
                    "passed": passed,
                    "weight": assertion.weight,
                    "details": (
                        f"path={assertion.expression!r} operator={assertion.operator} "
                        f"expected={assertion.value!r} actual={actual!r}"
                    ),
                }
            )

        total_weight = sum(o["weight"] for o in outcomes)
        if total_weight > 0:
            score = sum(o["weight"] for o in outcomes if o["passed"]) / total_weight
        else:
            score = sum(1 for o in outcomes if o["passed"]) / len(outcomes)
        all_passed = all(o["passed"] for o in outcomes)

        details = "; ".join(
            f"{'PASS' if o['passed'] else 'FAIL'} {o['name']}: {o['details']}" for o in outcomes
        )
        return self.result(score, all_passed, details, metadata={"assertions": outcomes})
