"""Result data models for anvil run outputs.

These models encode the artifacts each pipeline stage hands to the
next (validation results, diff artifact, evaluator results) and the
complete RunRecord emitted to the result sink. Designed for JSON
serialization and lossless round-trip deserialization.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from anvil.models.run import Run

# Exit code recorded for a command killed by its timeout.
TIMEOUT_EXIT_CODE = -1
# Exit code recorded for a command not run under stop_on_failure.
SKIPPED_EXIT_CODE = -2
# Exit code recorded for a command that could not be spawned.
SPAWN_FAILURE_EXIT_CODE = 127


class ValidationResult(BaseModel):
    """Outcome of one validation command."""

    name: str
    kind: str
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    timed_out: bool = False
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.skipped


class ChangeStatus(str, Enum):
    added = "added"
    removed = "removed"
    modified = "modified"
    unknown = "unknown"


class FileChange(BaseModel):
    """A single path that differs between fixture and workspace."""

    path: str
    status: ChangeStatus
    patch: str | None = None
    reason: str | None = None


class DependencyDelta(BaseModel):
    """Before/after version of one manifest dependency (None = absent)."""

    before: str | None = None
    after: str | None = None


class DiffArtifact(BaseModel):
    """Noise-filtered change set between workspace and fixture."""

    changes: list[FileChange] = Field(default_factory=list)
    dependencies: dict[str, DependencyDelta] = Field(default_factory=dict)
    manifest: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.changes and not self.dependencies

    def paths(self, status: ChangeStatus | None = None) -> list[str]:
        return [
            c.path for c in self.changes if status is None or c.status == status
        ]

    def get(self, path: str) -> FileChange | None:
        for change in self.changes:
            if change.path == path:
                return change
        return None


class EvaluatorResult(BaseModel):
    """Result of one evaluator over a finished run.

    ``succeeded`` is False when the evaluator itself could not produce a
    score; such results are excluded from aggregation. ``passed`` is the
    outcome of the check when it did run.
    """

    evaluator_id: str
    score: float = Field(ge=0.0, le=1.0)
    weight: float = Field(ge=0.0)
    details: str = ""
    succeeded: bool = True
    passed: bool = False
    error: str | None = None
    metadata: dict[str, Any] | None = None


class ScoreReport(BaseModel):
    """Final weighted score in [0, 10] with per-evaluator breakdown."""

    total: float = Field(ge=0.0, le=10.0)
    breakdown: list[EvaluatorResult] = Field(default_factory=list)
    weight_used: float = 0.0
    excluded: list[str] = Field(default_factory=list)


class AgentFailure(BaseModel):
    """Structured description of a backend failure."""

    category: str
    message: str


class AgentSummary(BaseModel):
    """Normalized agent output carried in the run record."""

    adapter: str
    success: bool
    transcript_summary: str = ""
    tool_calls: list[dict[str, Any]] = Field(default_factory=list)
    failure: AgentFailure | None = None


class SyncStatus(str, Enum):
    pending = "pending"
    synced = "synced"
    unsynced = "unsynced"


class RunRecord(BaseModel):
    """Complete record of one run, handed to the result sink."""

    run: Run
    scenario_id: str
    agent: AgentSummary | None = None
    validation: list[ValidationResult] = Field(default_factory=list)
    diff: DiffArtifact = Field(default_factory=DiffArtifact)
    score: ScoreReport
    sync_status: SyncStatus = SyncStatus.pending
    remote_id: str | None = None
    sync_error: str | None = None
    anvil_version: str = ""

    @property
    def run_id(self) -> str:
        return self.run.run_id
