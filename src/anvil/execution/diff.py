"""Structural diff of a workspace against its golden fixture.

Both trees are walked with the ignore rules applied before
classification and before descending into a directory, so an ignored
path can never surface in the artifact whatever the walk order. The
dependency delta is read from the manifest separately and does not go
through the ignore rules.
"""

from __future__ import annotations

import difflib
import fnmatch
import json
import os
import re
import tomllib
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from anvil.errors import DiffError
from anvil.models.result import ChangeStatus, DependencyDelta, DiffArtifact, FileChange

if TYPE_CHECKING:
    from anvil.models.scenario import Scenario

logger = structlog.get_logger(__name__)

DEFAULT_IGNORE_RULES: tuple[str, ...] = (
    # lockfiles
    "package-lock.json",
    "pnpm-lock.yaml",
    "yarn.lock",
    "bun.lockb",
    "npm-shrinkwrap.json",
    "poetry.lock",
    "uv.lock",
    "Cargo.lock",
    # dependency installs
    "node_modules",
    ".venv",
    "venv",
    ".pnpm-store",
    "vendor/bundle",
    # build output
    "dist",
    "build",
    "out",
    ".next",
    ".turbo",
    "coverage",
    "*.tsbuildinfo",
    "target",
    # tool caches
    ".cache",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
    ".eslintcache",
    ".git",
    ".DS_Store",
)

PACKAGE_JSON_SECTIONS: tuple[str, ...] = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

MAX_PATCH_CHARS = 20_000
PATCH_TRUNCATED_MARKER = "\n... [patch truncated]\n"
MAX_PATCH_SOURCE_BYTES = 1_000_000
_BINARY_SNIFF_BYTES = 8_192

_REQUIREMENT = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)\s*(\[[^\]]*\])?\s*(.*)$")


def resolve_ignore_rules(scenario: Scenario | None) -> tuple[str, ...]:
    """Return the ignore rules in force for a scenario.

    The defaults apply unless the scenario declares ``ignore``; its
    ``extend`` rules are appended, or replace the defaults entirely
    when ``replace`` is set.
    """
    if scenario is None or scenario.ignore is None:
        return DEFAULT_IGNORE_RULES
    if scenario.ignore.replace:
        return tuple(scenario.ignore.extend)
    return DEFAULT_IGNORE_RULES + tuple(scenario.ignore.extend)


class IgnoreRules:
    """Matcher for relative POSIX paths.

    A rule without a slash is matched (fnmatch) against every single
    path segment. A rule with a slash matches that path and everything
    beneath it.
    """

    def __init__(self, rules: Iterable[str]) -> None:
        self.segment_rules: list[str] = []
        self.prefix_rules: list[str] = []
        for rule in rules:
            rule = rule.strip().strip("/")
            if not rule:
                continue
            if "/" in rule:
                self.prefix_rules.append(rule)
            else:
                self.segment_rules.append(rule)

    def matches(self, rel_path: str) -> bool:
        for segment in rel_path.split("/"):
            for rule in self.segment_rules:
                if fnmatch.fnmatchcase(segment, rule):
                    return True
        for prefix in self.prefix_rules:
            if rel_path == prefix or rel_path.startswith(prefix + "/"):
                return True
        return False


def _normalize_python_name(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def _parse_requirement(line: str) -> tuple[str, str] | None:
    line = line.split("#", 1)[0].split(";", 1)[0].strip()
    if not line or line.startswith("-"):
        return None
    match = _REQUIREMENT.match(line)
    if match is None:
        return None
    name, _, spec = match.groups()
    return _normalize_python_name(name), spec.strip() or "*"


def parse_package_json(text: str) -> dict[str, str]:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("package.json is not a JSON object")
    deps: dict[str, str] = {}
    for section in PACKAGE_JSON_SECTIONS:
        entries = data.get(section) or {}
        if not isinstance(entries, dict):
            raise ValueError(f"'{section}' is not an object")
        for name, version in entries.items():
            deps.setdefault(name, str(version))
    return deps


def parse_requirements_txt(text: str) -> dict[str, str]:
    deps: dict[str, str] = {}
    for line in text.splitlines():
        parsed = _parse_requirement(line)
        if parsed is not None:
            deps.setdefault(*parsed)
    return deps


def parse_pyproject(text: str) -> dict[str, str]:
    data = tomllib.loads(text)
    requirements = data.get("project", {}).get("dependencies", [])
    if not isinstance(requirements, list):
        raise ValueError("[project].dependencies is not a list")
    deps: dict[str, str] = {}
    for requirement in requirements:
        parsed = _parse_requirement(str(requirement))
        if parsed is not None:
            deps.setdefault(*parsed)
    return deps


MANIFEST_PARSERS = {
    "package.json": parse_package_json,
    "requirements.txt": parse_requirements_txt,
    "pyproject.toml": parse_pyproject,
}


def is_binary(data: bytes) -> bool:
    return b"\x00" in data[:_BINARY_SNIFF_BYTES]


class DiffBuilder:
    """Computes DiffArtifacts for a fixed ignore rule set."""

    def __init__(self, ignore_rules: Iterable[str] = DEFAULT_IGNORE_RULES) -> None:
        self.rules = IgnoreRules(ignore_rules)

    def diff(self, workspace_dir: Path, fixture_dir: Path) -> DiffArtifact:
        """Compare *workspace_dir* (after) against *fixture_dir* (before)."""
        workspace_dir = Path(workspace_dir)
        fixture_dir = Path(fixture_dir)
        warnings: list[str] = []
        unreadable: dict[str, str] = {}

        if fixture_dir.is_dir():
            before = self._collect(fixture_dir, unreadable)
        else:
            before = {}
            warnings.append(f"fixture tree missing: {fixture_dir}")
        if workspace_dir.is_dir():
            after = self._collect(workspace_dir, unreadable)
        else:
            after = {}
            warnings.append(f"workspace tree missing: {workspace_dir}")

        changes: list[FileChange] = []
        for rel in sorted(set(before) | set(after) | set(unreadable)):
            if rel in unreadable:
                changes.append(
                    FileChange(path=rel, status=ChangeStatus.unknown, reason=unreadable[rel])
                )
                continue
            change = self._classify(rel, before.get(rel), after.get(rel))
            if change is not None:
                changes.append(change)

        manifest, dependencies = self._dependency_delta(workspace_dir, fixture_dir, warnings)

        logger.debug(
            "diff.built",
            changes=len(changes),
            dependencies=len(dependencies),
            manifest=manifest,
        )
        return DiffArtifact(
            changes=changes,
            dependencies=dependencies,
            manifest=manifest,
            warnings=warnings,
        )

    def _collect(self, root: Path, unreadable: dict[str, str]) -> dict[str, Path]:
        """Map relative POSIX path -> absolute path for every non-ignored file."""
        files: dict[str, Path] = {}

        def on_error(exc: OSError) -> None:
            if exc.filename is None:
                return
            rel = Path(exc.filename).relative_to(root).as_posix()
            if rel != "." and not self.rules.matches(rel):
                unreadable[rel] = f"directory not readable: {exc.strerror or exc}"

        for current, dirnames, filenames in os.walk(root, onerror=on_error):
            base = Path(current)
            kept_dirs = []
            for name in sorted(dirnames):
                rel = (base / name).relative_to(root).as_posix()
                if self.rules.matches(rel):
                    continue
                if (base / name).is_symlink():
                    # compared as a link, never followed
                    files[rel] = base / name
                    continue
                kept_dirs.append(name)
            dirnames[:] = kept_dirs

            for name in filenames:
                rel = (base / name).relative_to(root).as_posix()
                if not self.rules.matches(rel):
                    files[rel] = base / name
        return files

    def _classify(self, rel: str, before: Path | None, after: Path | None) -> FileChange | None:
        try:
            if before is None:
                return FileChange(
                    path=rel, status=ChangeStatus.added, patch=self._patch(rel, None, after)
                )
            if after is None:
                return FileChange(
                    path=rel, status=ChangeStatus.removed, patch=self._patch(rel, before, None)
                )
            if self._same(before, after):
                return None
            return FileChange(
                path=rel, status=ChangeStatus.modified, patch=self._patch(rel, before, after)
            )
        except DiffError as exc:
            return FileChange(path=rel, status=ChangeStatus.unknown, reason=exc.reason)

    def _same(self, before: Path, after: Path) -> bool:
        if before.is_symlink() or after.is_symlink():
            if before.is_symlink() != after.is_symlink():
                return False
            return os.readlink(before) == os.readlink(after)
        try:
            if before.stat().st_size != after.stat().st_size:
                return False
            return before.read_bytes() == after.read_bytes()
        except OSError as exc:
            raise DiffError(str(after), f"not readable: {exc.strerror or exc}") from exc

    def _read_for_patch(self, path: Path | None) -> list[str] | None:
        """Return the file's lines, or None when no text patch applies."""
        if path is None:
            return []
        if path.is_symlink():
            return None
        try:
            if path.stat().st_size > MAX_PATCH_SOURCE_BYTES:
                return None
            data = path.read_bytes()
        except OSError as exc:
            raise DiffError(str(path), f"not readable: {exc.strerror or exc}") from exc
        if is_binary(data):
            return None
        try:
            return data.decode("utf-8").splitlines(keepends=True)
        except UnicodeDecodeError as exc:
            raise DiffError(str(path), f"not valid UTF-8: {exc.reason}") from exc

    def _patch(self, rel: str, before: Path | None, after: Path | None) -> str | None:
        old = self._read_for_patch(before)
        new = self._read_for_patch(after)
        if old is None or new is None:
            return None
        patch = "".join(
            difflib.unified_diff(
                old,
                new,
                fromfile=f"a/{rel}" if before is not None else "/dev/null",
                tofile=f"b/{rel}" if after is not None else "/dev/null",
            )
        )
        if len(patch) > MAX_PATCH_CHARS:
            patch = patch[:MAX_PATCH_CHARS] + PATCH_TRUNCATED_MARKER
        return patch

    def _dependency_delta(
        self,
        workspace_dir: Path,
        fixture_dir: Path,
        warnings: list[str],
    ) -> tuple[str | None, dict[str, DependencyDelta]]:
        manifest = next(
            (
                name
                for name in MANIFEST_PARSERS
                if (workspace_dir / name).is_file() or (fixture_dir / name).is_file()
            ),
            None,
        )
        if manifest is None:
            return None, {}

        parser = MANIFEST_PARSERS[manifest]
        before = self._read_manifest(fixture_dir / manifest, parser, "fixture", warnings)
        after = self._read_manifest(workspace_dir / manifest, parser, "workspace", warnings)

        delta: dict[str, DependencyDelta] = {}
        for name in sorted(set(before) | set(after)):
            old, new = before.get(name), after.get(name)
            if old != new:
                delta[name] = DependencyDelta(before=old, after=new)
        return manifest, delta

    @staticmethod
    def _read_manifest(path: Path, parser, side: str, warnings: list[str]) -> dict[str, str]:
        if not path.is_file():
            return {}
        try:
            return parser(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValueError, tomllib.TOMLDecodeError) as exc:
            warnings.append(f"{path.name} in {side} could not be parsed: {exc}")
            logger.warning("diff.manifest_unparsable", manifest=path.name, side=side, error=str(exc))
            return {}
