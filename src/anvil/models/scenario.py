"""Scenario data models for anvil benchmark definitions.

These models encode the user-facing YAML contract for a benchmark
scenario: the fixture repository, per-tier prompts, ordered validation
commands, package constraints, and evaluator weight overrides.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

CommandKind = Literal["install", "build", "lint", "typecheck", "test", "other"]

_KNOWN_KINDS: frozenset[str] = frozenset(
    {"install", "build", "lint", "typecheck", "test"}
)


class ValidationCommand(BaseModel):
    """A single shell command run against the workspace after the agent."""

    model_config = {"extra": "forbid", "frozen": True}

    name: str
    run: str
    kind: CommandKind = "other"
    timeout_seconds: float | None = Field(default=None, gt=0)


class RequiredTarget(BaseModel):
    """A dependency that must end up within a version range."""

    model_config = {"extra": "forbid", "frozen": True}

    name: str
    version: str


class Targets(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    required: list[RequiredTarget] = Field(default_factory=list)


class Constraints(BaseModel):
    """Package-level constraints the agent's changes must respect."""

    model_config = {"extra": "forbid", "frozen": True}

    managers_allowed: list[str] = Field(default_factory=list)
    targets: Targets = Field(default_factory=Targets)


class IgnoreConfig(BaseModel):
    """Scenario override for the diff ignore rule set."""

    model_config = {"extra": "forbid", "frozen": True}

    extend: list[str] = Field(default_factory=list)
    replace: bool = False


class JudgeCriterion(BaseModel):
    """A named rubric criterion scored by the LLM judge."""

    model_config = {"extra": "forbid", "frozen": True}

    name: str
    description: str
    weight: float = Field(default=1.0, ge=0.0)


class Assertion(BaseModel):
    """A JMESPath check over the queryable run record."""

    model_config = {"extra": "forbid", "frozen": True}

    expression: str
    operator: Literal[
        "eq", "ne", "gt", "gte", "lt", "lte", "exists", "contains", "regex"
    ] = "exists"
    value: Any = None
    weight: float = Field(default=1.0, ge=0.0)
    name: str | None = None


class Scenario(BaseModel):
    """A complete benchmark scenario loaded from scenario.yaml.

    Immutable once loaded. Validation commands keep their declared
    order; that order is the execution order and the result order.
    """

    model_config = {"extra": "forbid", "frozen": True}

    id: str = Field(pattern=r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
    title: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    fixture: str = "repo-fixture"
    prompts: dict[str, str] = Field(default_factory=dict)
    validation: list[ValidationCommand] = Field(default_factory=list)
    validation_policy: Literal["run_all", "stop_on_failure"] = "run_all"
    constraints: Constraints = Field(default_factory=Constraints)
    evaluators: dict[str, float] = Field(default_factory=dict)
    ignore: IgnoreConfig | None = None
    rubric: list[JudgeCriterion] = Field(default_factory=list)
    assertions: list[Assertion] = Field(default_factory=list)

    @field_validator("validation", mode="before")
    @classmethod
    def _expand_validation_shorthand(cls, value: Any) -> Any:
        """Accept a name->command mapping or bare command strings.

        ``{install: "pnpm install", test: "pnpm test"}`` becomes two
        commands whose kind is inferred from the name when it is a known
        kind. Bare strings get positional names.
        """
        if isinstance(value, dict):
            return [
                {
                    "name": name,
                    "run": run,
                    "kind": name if name in _KNOWN_KINDS else "other",
                }
                for name, run in value.items()
            ]
        if isinstance(value, list):
            expanded = []
            for idx, item in enumerate(value):
                if isinstance(item, str):
                    expanded.append({"name": f"command-{idx + 1}", "run": item})
                else:
                    expanded.append(item)
            return expanded
        return value

    @field_validator("evaluators")
    @classmethod
    def _weights_non_negative(cls, value: dict[str, float]) -> dict[str, float]:
        for evaluator_id, weight in value.items():
            if weight < 0:
                raise ValueError(
                    f"weight for evaluator '{evaluator_id}' must be >= 0, got {weight}"
                )
        return value
