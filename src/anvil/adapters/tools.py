"""Workspace tools exposed to chat-based agents.

The hosted adapters give the model four file tools. Every path is
resolved relative to the workspace root and rejected if it escapes it.
Tool errors are returned to the model as text, not raised: a bad tool
call is part of the agent's behaviour, not a backend failure.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

WORKSPACE_TOOLS: list[dict[str, Any]] = [
    {
        "name": "list_files",
        "description": "List files under a directory of the repository (recursive).",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Directory relative to the repository root. Defaults to '.'.",
                },
            },
            "required": [],
        },
    },
    {
        "name": "read_file",
        "description": "Read a UTF-8 text file from the repository.",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to the repository root."},
            },
            "required": ["path"],
        },
    },
    {
        "name": "write_file",
        "description": "Create or overwrite a text file in the repository.",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to the repository root."},
                "content": {"type": "string", "description": "Full new file content."},
            },
            "required": ["path", "content"],
        },
    },
    {
        "name": "delete_file",
        "description": "Delete a file from the repository.",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to the repository root."},
            },
            "required": ["path"],
        },
    },
]

_LISTING_SKIP = frozenset({".git", "node_modules", ".venv", "__pycache__"})


class ToolPathError(Exception):
    """Raised when a tool path resolves outside the workspace."""


class WorkspaceTools:
    """Executes WORKSPACE_TOOLS calls against one workspace directory."""

    def __init__(
        self,
        root: Path,
        max_read_chars: int = 100_000,
        max_listing: int = 2_000,
    ) -> None:
        self.root = Path(root).resolve()
        self.max_read_chars = max_read_chars
        self.max_listing = max_listing

    def resolve(self, relative: str) -> Path:
        """Resolve a model-supplied path, refusing anything outside the root."""
        candidate = (self.root / relative).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise ToolPathError(f"path '{relative}' is outside the repository")
        return candidate

    def execute(self, name: str, arguments: dict[str, Any]) -> str:
        """Run one tool call and return the text fed back to the model."""
        handlers = {
            "list_files": self._list_files,
            "read_file": self._read_file,
            "write_file": self._write_file,
            "delete_file": self._delete_file,
        }
        handler = handlers.get(name)
        if handler is None:
            return f"error: unknown tool '{name}'. Available: {sorted(handlers)}"
        try:
            return handler(arguments)
        except ToolPathError as exc:
            return f"error: {exc}"
        except KeyError as exc:
            return f"error: missing argument {exc}"
        except OSError as exc:
            return f"error: {exc.strerror or exc}"

    def _list_files(self, arguments: dict[str, Any]) -> str:
        base = self.resolve(arguments.get("path") or ".")
        if not base.is_dir():
            return f"error: '{arguments.get('path')}' is not a directory"
        entries: list[str] = []
        for path in sorted(base.rglob("*")):
            rel = path.relative_to(self.root)
            if any(part in _LISTING_SKIP for part in rel.parts):
                continue
            if path.is_file():
                entries.append(rel.as_posix())
            if len(entries) >= self.max_listing:
                entries.append("... (listing truncated)")
                break
        return "\n".join(entries) if entries else "(empty)"

    def _read_file(self, arguments: dict[str, Any]) -> str:
        path = self.resolve(arguments["path"])
        text = path.read_text(encoding="utf-8", errors="replace")
        if len(text) > self.max_read_chars:
            text = text[: self.max_read_chars] + "\n... [truncated]"
        return text

    def _write_file(self, arguments: dict[str, Any]) -> str:
        path = self.resolve(arguments["path"])
        content = arguments["content"]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return f"wrote {len(content)} characters to {path.relative_to(self.root).as_posix()}"

    def _delete_file(self, arguments: dict[str, Any]) -> str:
        path = self.resolve(arguments["path"])
        if not path.is_file():
            return f"error: '{arguments['path']}' is not a file"
        path.unlink()
        return f"deleted {path.relative_to(self.root).as_posix()}"
