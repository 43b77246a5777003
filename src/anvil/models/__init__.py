"""anvil data models - re-exports all public model classes."""

from anvil.models.config import ProjectConfig
from anvil.models.oracle import Oracle
from anvil.models.result import (
    AgentFailure,
    AgentSummary,
    ChangeStatus,
    DependencyDelta,
    DiffArtifact,
    EvaluatorResult,
    FileChange,
    RunRecord,
    ScoreReport,
    SyncStatus,
    ValidationResult,
)
from anvil.models.run import (
    UNAVAILABLE,
    Run,
    RunConfig,
    RunStatus,
    StageStatus,
    Telemetry,
    WorkspaceHandle,
)
from anvil.models.scenario import (
    Assertion,
    Constraints,
    JudgeCriterion,
    Scenario,
    ValidationCommand,
)

__all__ = [
    "UNAVAILABLE",
    "AgentFailure",
    "AgentSummary",
    "Assertion",
    "ChangeStatus",
    "Constraints",
    "DependencyDelta",
    "DiffArtifact",
    "EvaluatorResult",
    "FileChange",
    "JudgeCriterion",
    "Oracle",
    "ProjectConfig",
    "Run",
    "RunConfig",
    "RunRecord",
    "RunStatus",
    "Scenario",
    "ScoreReport",
    "StageStatus",
    "SyncStatus",
    "Telemetry",
    "ValidationCommand",
    "ValidationResult",
    "WorkspaceHandle",
]
