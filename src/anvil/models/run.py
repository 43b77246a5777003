"""Run lifecycle models.

A Run is created once per execution by the orchestrator and mutated
only by it as stages complete. RunConfig is the fully resolved input
produced upstream; Telemetry keeps a fixed shape across adapters.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

# Sentinel for telemetry fields an adapter cannot supply.
UNAVAILABLE = -1

STAGES: tuple[str, ...] = (
    "workspace",
    "agent",
    "validation",
    "diff",
    "evaluation",
)


class Telemetry(BaseModel):
    """Usage metrics for one agent run.

    Every field is always present. Fields the backend cannot report
    hold UNAVAILABLE rather than being omitted or set to None.
    """

    tokens_in: int = UNAVAILABLE
    tokens_out: int = UNAVAILABLE
    cost_usd: float = UNAVAILABLE
    tool_calls: int = UNAVAILABLE
    turns: int = UNAVAILABLE
    duration_seconds: float = UNAVAILABLE

    def is_available(self, field_name: str) -> bool:
        return getattr(self, field_name) != UNAVAILABLE


class RunStatus(str, Enum):
    """Lifecycle status of a run."""

    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class StageStatus(str, Enum):
    """Status of a single pipeline stage within a run."""

    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    skipped = "skipped"


class RunConfig(BaseModel):
    """Fully resolved run selection handed to the orchestrator."""

    model_config = {"extra": "forbid", "frozen": True}

    scenario_id: str
    tier: str
    agent: str
    model: str
    max_turns: int | None = Field(default=None, ge=1, le=500)
    tool_call_budget: int | None = Field(default=None, ge=1)
    iteration: int = Field(default=0, ge=0)
    extras: dict[str, Any] = Field(default_factory=dict)

    @property
    def identity(self) -> tuple[str, str, str, int]:
        """Workspace identity: no two concurrent runs may share it."""
        return (self.scenario_id, self.tier, self.agent, self.iteration)


class WorkspaceHandle(BaseModel):
    """A materialized, mutable copy of a scenario fixture."""

    model_config = {"frozen": True}

    path: Path
    fixture: Path
    identity: tuple[str, str, str, int]


class Run(BaseModel):
    """A single benchmark execution."""

    run_id: str
    config: RunConfig
    workspace: WorkspaceHandle | None = None
    status: RunStatus = RunStatus.pending
    failed_stage: str | None = None
    stages: dict[str, StageStatus] = Field(
        default_factory=lambda: {stage: StageStatus.pending for stage in STAGES}
    )
    telemetry: Telemetry = Field(default_factory=Telemetry)
    errors: list[str] = Field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def start(self) -> None:
        self.status = RunStatus.running
        self.started_at = datetime.now(timezone.utc)

    def mark_stage(self, stage: str, status: StageStatus) -> None:
        self.stages[stage] = status

    def fail_stage(self, stage: str, message: str) -> None:
        """Record a stage failure. The first failing stage is kept."""
        self.stages[stage] = StageStatus.failed
        self.errors.append(f"{stage}: {message}")
        if self.failed_stage is None:
            self.failed_stage = stage

    def skip_pending(self, stages: tuple[str, ...] = STAGES) -> None:
        """Mark every not-yet-started stage among *stages* as skipped."""
        for stage in stages:
            if self.stages.get(stage) in (StageStatus.pending, StageStatus.running):
                self.stages[stage] = StageStatus.skipped

    def finish(self, cancelled: bool = False) -> None:
        if cancelled:
            self.status = RunStatus.cancelled
        elif self.failed_stage is not None:
            self.status = RunStatus.failed
        else:
            self.status = RunStatus.completed
        self.finished_at = datetime.now(timezone.utc)
