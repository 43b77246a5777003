"""Evaluators over validation command outcomes."""

from __future__ import annotations

from anvil.evaluation.evaluators.base import BaseEvaluator, EvaluationContext
from anvil.models.result import EvaluatorResult, ValidationResult


def _describe(result: ValidationResult) -> str:
    if result.skipped:
        return f"{result.name}: skipped"
    if result.timed_out:
        return f"{result.name}: timed out"
    return f"{result.name}: exit {result.exit_code}"


class CommandKindEvaluator(BaseEvaluator):
    """Passes when every command of one kind exited 0.

    Vacuously passes when the scenario declares no command of the kind.
    """

    kind: str = "other"

    def evaluate(self, context: EvaluationContext) -> EvaluatorResult:
        results = [r for r in context.validation if r.kind == self.kind]
        if not results:
            return self.result(1.0, True, f"no {self.kind} commands declared")

        failed = [r for r in results if not r.succeeded]
        details = "; ".join(_describe(r) for r in results)
        return self.result(
            0.0 if failed else 1.0,
            not failed,
            details,
            metadata={"failed": [r.name for r in failed]},
        )


class InstallEvaluator(CommandKindEvaluator):
    evaluator_id = "install"
    kind = "install"
    default_weight = 2.0


class TestEvaluator(CommandKindEvaluator):
    __test__ = False

    evaluator_id = "test"
    kind = "test"
    default_weight = 3.0


class ValidationEvaluator(BaseEvaluator):
    """Fraction of all declared validation commands that succeeded."""

    evaluator_id = "validation"
    default_weight = 1.0

    def evaluate(self, context: EvaluationContext) -> EvaluatorResult:
        if not context.validation:
            return self.result(1.0, True, "no validation commands declared")

        succeeded = sum(1 for r in context.validation if r.succeeded)
        total = len(context.validation)
        return self.result(
            succeeded / total,
            succeeded == total,
            f"{succeeded}/{total} commands succeeded: "
            + "; ".join(_describe(r) for r in context.validation),
        )
