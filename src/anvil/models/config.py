"""Project configuration model for anvil.

Captures anvil.yaml fields with sensible defaults for project-level
settings: directories, timeouts, agent defaults, judge, sink, logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

# Documented default per-command validation timeout (10 minutes).
DEFAULT_COMMAND_TIMEOUT_SECONDS = 600.0


class ValidationSettings(BaseModel):
    """Defaults for the validation runner."""

    model_config = {"extra": "forbid"}

    timeout_seconds: float = Field(default=DEFAULT_COMMAND_TIMEOUT_SECONDS, gt=0)
    max_output_chars: int = Field(default=20_000, ge=0)


class AgentSettings(BaseModel):
    """Defaults applied to every agent adapter invocation."""

    model_config = {"extra": "forbid"}

    default_adapter: str = "echo"
    default_model: str = "gpt-4o"
    max_turns: int = Field(default=30, ge=1, le=500)
    tool_call_budget: int | None = Field(default=None, ge=1)
    timeout_seconds: float = Field(default=1800.0, gt=0)
    max_retries: int = Field(default=3, ge=0)


class JudgeConfig(BaseModel):
    """Configuration for the LLM judge evaluator.

    Controls whether the judge runs, the adapter and model it uses, the
    vote count, and the per-call timeout.
    """

    model_config = {"extra": "forbid"}

    enabled: bool = False
    adapter: str = "openai"
    model: str = "gpt-4o-mini"
    k: int = Field(default=3, ge=1, le=21)
    temperature: float = 0.0
    max_tokens: int = 1024
    timeout_seconds: float = Field(default=120.0, gt=0)
    weight: float = Field(default=2.0, ge=0.0)
    threshold: float = Field(default=0.7, ge=0.0, le=1.0)


class SinkConfig(BaseModel):
    """Where finished run records are submitted. No url -> local only."""

    model_config = {"extra": "forbid"}

    url: str | None = None
    token_env: str = "ANVIL_SINK_TOKEN"
    timeout_seconds: float = Field(default=30.0, gt=0)


class LoggingConfig(BaseModel):
    model_config = {"extra": "forbid"}

    format: Literal["console", "json"] = "console"
    level: Literal["debug", "info", "warning", "error"] = "info"


class ProjectConfig(BaseModel):
    """Project-level configuration loaded from anvil.yaml."""

    model_config = {"extra": "forbid"}

    scenarios_dir: str = "scenarios"
    workspaces_dir: str = ".anvil/workspaces"
    storage_dir: str = ".anvil"
    retain_workspaces: bool = True
    max_parallel: int = Field(default=1, ge=1)
    run_timeout_seconds: float | None = Field(default=None, gt=0)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    judge: JudgeConfig = Field(default_factory=JudgeConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for anvil.yaml or .anvil/.

    Args:
        start: Starting path (file or directory). Defaults to cwd.

    Returns:
        Path to the project root directory containing anvil.yaml or .anvil/,
        or cwd if neither is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / "anvil.yaml").exists() or (current / ".anvil").exists():
            return current
        current = current.parent
    return Path.cwd()


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load ProjectConfig from anvil.yaml. Returns defaults if not found.

    Args:
        project_root: Path to the project root directory. If None,
            uses find_project_root() to locate it.

    Returns:
        Validated ProjectConfig instance.
    """
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / "anvil.yaml"
    if not config_path.exists():
        return ProjectConfig()
    import yaml

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        return ProjectConfig()
    return ProjectConfig.model_validate(raw)
