"""Oracle record: the authoritative expected outcome of a scenario."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class Oracle(BaseModel):
    """Expected diff and dependency outcome, consumed only by evaluators."""

    model_config = {"extra": "forbid", "frozen": True}

    expected_changes: dict[str, Literal["added", "removed", "modified"]] = Field(
        default_factory=dict
    )
    expected_dependencies: dict[str, str] = Field(default_factory=dict)
    notes: str = ""
