"""YAML parser with line tracking for error reporting.

A PyYAML SafeLoader subclass that records the source position of every
mapping key, so a schema error in scenario.yaml can point at the exact
line and column that caused it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

LineMap = dict[str, tuple[int, int]]


class YAMLParseError(Exception):
    """Raised when YAML syntax cannot be parsed.

    Attributes:
        line: 1-indexed line number where the error occurred.
        column: 1-indexed column number where the error occurred.
        filename: Name of the file being parsed, or '<string>'.
    """

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: int | None = None,
        filename: str = "<string>",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.filename = filename


class LineTrackingLoader(yaml.SafeLoader):
    """SafeLoader that fills ``line_map`` with dotted key path -> (line, col).

    Sequence items contribute their index to the path, so the ``run``
    key of the second validation command is ``validation.1.run``.
    """

    def __init__(self, stream: str) -> None:
        super().__init__(stream)
        self.line_map: LineMap = {}
        self._path: list[str] = []

    def _construct_child(self, segment: str, node: yaml.Node, deep: bool) -> Any:
        if isinstance(node, (yaml.MappingNode, yaml.SequenceNode)):
            self._path.append(segment)
            try:
                return self.construct_object(node, deep=deep)
            finally:
                self._path.pop()
        return self.construct_object(node, deep=deep)

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[str, Any]:
        self.flatten_mapping(node)
        mapping: dict[Any, Any] = {}
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if isinstance(key, str):
                mark = key_node.start_mark
                self.line_map[".".join([*self._path, key])] = (mark.line + 1, mark.column + 1)
                mapping[key] = self._construct_child(key, value_node, deep)
            else:
                mapping[key] = self.construct_object(value_node, deep=deep)
        return mapping

    def construct_sequence(self, node: yaml.SequenceNode, deep: bool = False) -> list[Any]:
        return [
            self._construct_child(str(idx), child, deep)
            for idx, child in enumerate(node.value)
        ]

    def construct_yaml_map(self, node: yaml.MappingNode) -> Any:
        yield self.construct_mapping(node, deep=True)

    def construct_yaml_seq(self, node: yaml.SequenceNode) -> Any:
        yield self.construct_sequence(node, deep=True)


LineTrackingLoader.add_constructor("tag:yaml.org,2002:map", LineTrackingLoader.construct_yaml_map)
LineTrackingLoader.add_constructor("tag:yaml.org,2002:seq", LineTrackingLoader.construct_yaml_seq)


def parse_yaml_with_lines(source: str, filename: str = "<string>") -> tuple[dict | None, LineMap]:
    """Parse a YAML string and return (data, line_map).

    Returns (None, {}) for empty or comment-only YAML, or when the
    top-level value is not a mapping.

    Raises:
        YAMLParseError: If the YAML contains syntax errors.
    """
    loader = LineTrackingLoader(source)
    try:
        data = loader.get_single_data()
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        raise YAMLParseError(
            message=str(exc),
            line=mark.line + 1 if mark is not None else None,
            column=mark.column + 1 if mark is not None else None,
            filename=filename,
        ) from exc
    finally:
        loader.dispose()

    if not isinstance(data, dict):
        return None, {}
    return data, loader.line_map


def parse_yaml_file(filepath: Path) -> tuple[dict | None, LineMap]:
    """Parse a YAML file and return (data, line_map).

    Raises:
        YAMLParseError: If the file contains YAML syntax errors.
        FileNotFoundError: If the file does not exist.
    """
    return parse_yaml_with_lines(filepath.read_text(encoding="utf-8"), filename=str(filepath))
