"""Base evaluator abstract class and the context evaluators read."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from anvil.models.oracle import Oracle
from anvil.models.result import AgentSummary, DiffArtifact, EvaluatorResult, ValidationResult
from anvil.models.run import Run
from anvil.models.scenario import Scenario


@dataclass
class EvaluationContext:
    """Everything the pipeline produced for one run, read-only to evaluators."""

    run: Run
    scenario: Scenario
    validation: list[ValidationResult] = field(default_factory=list)
    diff: DiffArtifact = field(default_factory=DiffArtifact)
    oracle: Oracle | None = None
    agent: AgentSummary | None = None
    workspace: Path | None = None
    prompt: str | None = None


class BaseEvaluator(ABC):
    """Abstract base class for run evaluators.

    Each evaluator receives an EvaluationContext and returns an
    EvaluatorResult with a score in [0, 1]. An evaluator that cannot
    produce a score raises EvaluatorError; the scorer excludes it.
    """

    evaluator_id: str = "base"
    default_weight: float = 1.0

    def __init__(self, weight: float | None = None) -> None:
        self.weight = self.default_weight if weight is None else weight

    @abstractmethod
    def evaluate(self, context: EvaluationContext) -> EvaluatorResult:
        """Evaluate one finished run.

        Args:
            context: The run's accumulated artifacts.

        Returns:
            EvaluatorResult with score, passed, weight and details.
        """

    async def evaluate_async(self, context: EvaluationContext) -> EvaluatorResult:
        """Async evaluation. Default delegates to sync evaluate().

        Subclasses that need async (e.g., JudgeEvaluator) override this
        method with their async implementation.
        """
        return self.evaluate(context)

    def result(
        self,
        score: float,
        passed: bool,
        details: str,
        metadata: dict[str, Any] | None = None,
    ) -> EvaluatorResult:
        return EvaluatorResult(
            evaluator_id=self.evaluator_id,
            score=max(0.0, min(1.0, score)),
            weight=self.weight,
            details=details,
            passed=passed,
            metadata=metadata,
        )
