"""Evaluation package: evaluator registry and scoring aggregation."""

from __future__ import annotations

from anvil.evaluation.evaluators import EVALUATOR_REGISTRY, BaseEvaluator, EvaluationContext
from anvil.evaluation.registry import build_registry
from anvil.evaluation.scorer import compute_score, evaluate_run_async

__all__ = [
    "EVALUATOR_REGISTRY",
    "BaseEvaluator",
    "EvaluationContext",
    "build_registry",
    "compute_score",
    "evaluate_run_async",
]
