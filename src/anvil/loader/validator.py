"""Schema validation of parsed YAML with source positions.

Validates parsed data against a pydantic model and turns every
pydantic error into a ValidationErrorDetail carrying the dotted field
path, the YAML line/column where it lives, and a 'did you mean'
suggestion for mistyped keys.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from anvil.loader.yaml_parser import LineMap, YAMLParseError, parse_yaml_file, parse_yaml_with_lines
from anvil.models.scenario import Scenario

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class ValidationErrorDetail:
    """A single validation error with source position and context.

    Attributes:
        field: The dotted path of the field that caused the error.
        message: Human-readable error description.
        type: Pydantic error type string (e.g. 'missing', 'extra_forbidden').
        line: 1-indexed line number in the source YAML, or None if unknown.
        col: 1-indexed column number in the source YAML, or None if unknown.
        suggestion: 'Did you mean X?' suggestion for typos, or None.
        input_value: The invalid input value, if available.
    """

    field: str
    message: str
    type: str
    line: int | None = None
    col: int | None = None
    suggestion: str | None = None
    input_value: Any = field(default=None, repr=False)

    def format(self, filename: str) -> str:
        """Render as ``filename:line:col -- field: message (suggestion)``."""
        suffix = f" ({self.suggestion})" if self.suggestion else ""
        return f"{filename}:{self.line or 0}:{self.col or 0} -- {self.field}: {self.message}{suffix}"


def _find_position(field_path: str, line_map: LineMap) -> tuple[int | None, int | None]:
    """Position of a field, falling back to the closest enclosing key."""
    parts = field_path.split(".")
    while parts:
        prefix = ".".join(parts)
        if prefix in line_map:
            return line_map[prefix]
        parts.pop()
    return None, None


def _suggest(loc: tuple[str | int, ...], model: type[BaseModel]) -> str | None:
    """Suggest a valid sibling key for an unknown field."""
    if not loc:
        return None
    target: Any = model
    for part in loc[:-1]:
        info = getattr(target, "model_fields", {}).get(str(part))
        annotation = getattr(info, "annotation", None)
        if not (isinstance(annotation, type) and issubclass(annotation, BaseModel)):
            return None
        target = annotation
    candidates = list(getattr(target, "model_fields", {}).keys())
    matches = difflib.get_close_matches(str(loc[-1]), candidates, n=1, cutoff=0.6)
    return f"Did you mean '{matches[0]}'?" if matches else None


def validate_model(
    model: type[ModelT],
    raw_data: dict[str, Any],
    line_map: LineMap,
) -> tuple[ModelT | None, list[ValidationErrorDetail]]:
    """Validate parsed data against *model*.

    Returns:
        Tuple of (instance, []) on success, or (None, errors) on failure.
    """
    try:
        return model.model_validate(raw_data), []
    except ValidationError as exc:
        errors: list[ValidationErrorDetail] = []
        for err in exc.errors():
            loc = tuple(err.get("loc", ()))
            field_path = ".".join(str(part) for part in loc)
            error_type = err.get("type", "unknown")
            line, col = _find_position(field_path, line_map)
            errors.append(
                ValidationErrorDetail(
                    field=field_path or "<root>",
                    message=err.get("msg", "Validation error"),
                    type=error_type,
                    line=line,
                    col=col,
                    suggestion=_suggest(loc, model) if error_type == "extra_forbidden" else None,
                    input_value=err.get("input"),
                )
            )
        return None, errors


def _syntax_error(exc: YAMLParseError) -> ValidationErrorDetail:
    return ValidationErrorDetail(
        field="<yaml>",
        message=exc.message,
        type="yaml_syntax_error",
        line=exc.line,
        col=exc.column,
    )


def validate_scenario_string(
    source: str,
    filename: str = "<string>",
) -> tuple[Scenario | None, list[ValidationErrorDetail]]:
    """Parse and validate a scenario from a YAML string."""
    try:
        raw_data, line_map = parse_yaml_with_lines(source, filename=filename)
    except YAMLParseError as exc:
        return None, [_syntax_error(exc)]

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="Input is empty or not a mapping",
                type="empty_input",
            )
        ]
    return validate_model(Scenario, raw_data, line_map)


def validate_scenario_file(filepath: Path) -> tuple[Scenario | None, list[ValidationErrorDetail]]:
    """Parse and validate a scenario YAML file, returning all errors at once."""
    try:
        raw_data, line_map = parse_yaml_file(filepath)
    except YAMLParseError as exc:
        return None, [_syntax_error(exc)]

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="File is empty or not a mapping",
                type="empty_file",
            )
        ]
    return validate_model(Scenario, raw_data, line_map)
