"""Evaluator registry -- maps evaluator ids to evaluator classes."""

from __future__ import annotations

from anvil.evaluation.evaluators.assertions import AssertionsEvaluator
from anvil.evaluation.evaluators.base import BaseEvaluator, EvaluationContext
from anvil.evaluation.evaluators.commands import (
    InstallEvaluator,
    TestEvaluator,
    ValidationEvaluator,
)
from anvil.evaluation.evaluators.dependencies import (
    DependencyTargetsEvaluator,
    PackageManagerEvaluator,
)
from anvil.evaluation.evaluators.integrity import IntegrityEvaluator
from anvil.evaluation.evaluators.judge import JudgeEvaluator
from anvil.evaluation.evaluators.oracle import OracleEvaluator

EVALUATOR_REGISTRY: dict[str, type[BaseEvaluator]] = {
    "install": InstallEvaluator,
    "test": TestEvaluator,
    "validation": ValidationEvaluator,
    "dependency_targets": DependencyTargetsEvaluator,
    "package_manager": PackageManagerEvaluator,
    "integrity": IntegrityEvaluator,
    "oracle": OracleEvaluator,
    "assertions": AssertionsEvaluator,
    "judge": JudgeEvaluator,
}

__all__ = [
    "EVALUATOR_REGISTRY",
    "BaseEvaluator",
    "EvaluationContext",
    "JudgeEvaluator",
]
