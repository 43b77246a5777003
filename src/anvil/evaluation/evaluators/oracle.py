"""Oracle evaluator: compares the diff to the scenario's expected outcome."""

from __future__ import annotations

from anvil.errors import EvaluatorError
from anvil.evaluation.evaluators.base import BaseEvaluator, EvaluationContext
from anvil.evaluation.evaluators.dependencies import read_workspace_dependencies, version_satisfies
from anvil.models.result import EvaluatorResult


def _dependency_matches(found: str | None, expected: str) -> bool:
    if found is None:
        return False
    if found == expected:
        return True
    try:
        return version_satisfies(found, expected)
    except ValueError:
        return False


class OracleEvaluator(BaseEvaluator):
    """Fraction of expected file changes and dependency versions matched.

    Expected dependencies are checked against the final manifest, so a
    version the fixture already satisfied counts as a match. Raises
    EvaluatorError when the scenario ships no oracle, so the evaluator
    is excluded rather than scored.
    """

    evaluator_id = "oracle"
    default_weight = 1.0

    def evaluate(self, context: EvaluationContext) -> EvaluatorResult:
        oracle = context.oracle
        if oracle is None:
            raise EvaluatorError(self.evaluator_id, "no oracle available for this scenario")

        misses: list[str] = []
        total = 0

        for path, expected in sorted(oracle.expected_changes.items()):
            total += 1
            change = context.diff.get(path)
            actual = change.status.value if change else "unchanged"
            if actual != expected:
                misses.append(f"{path}: expected {expected}, got {actual}")

        final = read_workspace_dependencies(context)
        for name, expected in sorted(oracle.expected_dependencies.items()):
            total += 1
            if final is not None:
                found = final.get(name)
            else:
                delta = context.diff.dependencies.get(name)
                found = delta.after if delta else None
            if not _dependency_matches(found, expected):
                misses.append(f"{name}: expected {expected}, got {found or 'missing'}")

        if total == 0:
            return self.result(1.0, True, "oracle declares no expectations")

        matched = total - len(misses)
        details = f"{matched}/{total} expectations matched"
        if misses:
            details += ": " + "; ".join(misses)
        return self.result(matched / total, not misses, details, metadata={"misses": misses})
