"""Active evaluator set for one scenario.

Every heuristic evaluator is active by default. The assertions
evaluator joins when the scenario declares assertions and the judge
when it is enabled in project config. Scenario weight overrides apply
only to active ids; an override naming anything else is ignored.
"""

from __future__ import annotations

import structlog

from anvil.adapters.base import ChatBackend
from anvil.evaluation.evaluators import EVALUATOR_REGISTRY, BaseEvaluator, JudgeEvaluator
from anvil.models.config import ProjectConfig
from anvil.models.scenario import Scenario

logger = structlog.get_logger(__name__)

HEURISTIC_EVALUATORS: tuple[str, ...] = (
    "install",
    "test",
    "validation",
    "dependency_targets",
    "package_manager",
    "integrity",
    "oracle",
)


def active_evaluator_ids(scenario: Scenario, project_config: ProjectConfig) -> list[str]:
    ids = list(HEURISTIC_EVALUATORS)
    if scenario.assertions:
        ids.append("assertions")
    if project_config.judge.enabled:
        ids.append("judge")
    return ids


def build_registry(
    scenario: Scenario,
    project_config: ProjectConfig | None = None,
    judge_backend: ChatBackend | None = None,
) -> list[BaseEvaluator]:
    """Instantiate the active evaluators with their effective weights.

    Args:
        scenario: The scenario whose ``evaluators`` map holds weight overrides.
        project_config: Project settings (judge enablement and config).
        judge_backend: Optional pre-built chat backend for the judge.

    Returns:
        Evaluator instances in a stable order.
    """
    project_config = project_config or ProjectConfig()
    active = active_evaluator_ids(scenario, project_config)

    for evaluator_id in scenario.evaluators:
        if evaluator_id not in active:
            logger.debug(
                "evaluator.override_ignored",
                evaluator_id=evaluator_id,
                scenario_id=scenario.id,
            )

    evaluators: list[BaseEvaluator] = []
    for evaluator_id in active:
        weight = scenario.evaluators.get(evaluator_id)
        if evaluator_id == "judge":
            evaluators.append(
                JudgeEvaluator(config=project_config.judge, backend=judge_backend, weight=weight)
            )
        else:
            evaluators.append(EVALUATOR_REGISTRY[evaluator_id](weight=weight))
    return evaluators
