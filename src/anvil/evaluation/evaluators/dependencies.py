"""Evaluators for dependency constraints: version targets and package managers."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import semantic_version

from anvil.errors import EvaluatorError
from anvil.evaluation.evaluators.base import BaseEvaluator, EvaluationContext
from anvil.execution.diff import MANIFEST_PARSERS
from anvil.models.result import EvaluatorResult

_VERSION_TOKEN = re.compile(r"\d+(?:\.\d+){0,2}(?:-[0-9A-Za-z.-]+)?")

MANAGER_LOCKFILES: dict[str, str] = {
    "package-lock.json": "npm",
    "npm-shrinkwrap.json": "npm",
    "pnpm-lock.yaml": "pnpm",
    "yarn.lock": "yarn",
    "bun.lockb": "bun",
    "bun.lock": "bun",
    "poetry.lock": "poetry",
    "uv.lock": "uv",
}

_MANAGER_INVOCATION = re.compile(
    r"(?<![\w-])(npm|pnpm|yarn|bun|pip3?|uv|poetry)\s+"
    r"(?:install|i|ci|add|remove|rm|uninstall|update|up|upgrade|sync|lock)(?![\w-])"
)


def concrete_version(declared: str) -> semantic_version.Version | None:
    """Lowest concrete version named by a manifest entry.

    ``^5.2.0`` -> 5.2.0, ``~4.1`` -> 4.1.0, ``>=2 <3`` -> 2.0.0. Returns
    None for entries naming no version (``latest``, ``workspace:*``).
    """
    match = _VERSION_TOKEN.search(declared)
    if match is None:
        return None
    try:
        return semantic_version.Version.coerce(match.group(0))
    except ValueError:
        return None


def version_satisfies(declared: str, required: str) -> bool:
    """True when the version *declared* in a manifest satisfies an npm range.

    Raises:
        ValueError: If *required* is not a valid npm range.
    """
    spec = semantic_version.NpmSpec(required)
    version = concrete_version(declared)
    return version is not None and spec.match(version)


def read_workspace_dependencies(context: EvaluationContext) -> dict[str, str] | None:
    """Full after-state dependency map from the workspace manifest, if readable."""
    manifest = context.diff.manifest
    if context.workspace is None or manifest not in MANIFEST_PARSERS:
        return None
    path = Path(context.workspace) / manifest
    if not path.is_file():
        return None
    try:
        return MANIFEST_PARSERS[manifest](path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError):
        return None


class DependencyTargetsEvaluator(BaseEvaluator):
    """Every required package must end at a version inside its range."""

    evaluator_id = "dependency_targets"
    default_weight = 2.0

    def evaluate(self, context: EvaluationContext) -> EvaluatorResult:
        required = context.scenario.constraints.targets.required
        if not required:
            return self.result(1.0, True, "no dependency targets declared")

        after = read_workspace_dependencies(context)
        if after is None:
            after = {
                name: delta.after
                for name, delta in context.diff.dependencies.items()
                if delta.after is not None
            }

        outcomes: list[dict[str, Any]] = []
        for target in required:
            declared = after.get(target.name)
            try:
                ok = declared is not None and version_satisfies(declared, target.version)
            except ValueError as exc:
                raise EvaluatorError(
                    self.evaluator_id,
                    f"invalid version range {target.version!r} for {target.name}: {exc}",
                ) from exc
            outcomes.append(
                {"name": target.name, "required": target.version, "found": declared, "ok": ok}
            )

        satisfied = sum(1 for o in outcomes if o["ok"])
        details = "; ".join(
            f"{o['name']} {o['found'] or 'missing'} {'satisfies' if o['ok'] else 'does not satisfy'} "
            f"{o['required']}"
            for o in outcomes
        )
        return self.result(
            satisfied / len(outcomes),
            satisfied == len(outcomes),
            details,
            metadata={"targets": outcomes},
        )


def _files_differ(a: Path, b: Path) -> bool:
    try:
        return a.read_bytes() != b.read_bytes()
    except OSError:
        return True


class PackageManagerEvaluator(BaseEvaluator):
    """Only allowed package managers may leave traces in the run.

    Looks at lockfiles the run created or changed, the ``packageManager``
    field of the final package.json, and manager invocations in the
    agent's tool calls and the validation commands.
    """

    evaluator_id = "package_manager"
    default_weight = 1.0

    def evaluate(self, context: EvaluationContext) -> EvaluatorResult:
        allowed = set(context.scenario.constraints.managers_allowed)
        if not allowed:
            return self.result(1.0, True, "no package manager constraint declared")

        evidence: dict[str, list[str]] = {}

        def note(manager: str, source: str) -> None:
            evidence.setdefault(manager, []).append(source)

        workspace = Path(context.workspace) if context.workspace else None
        fixture = context.run.workspace.fixture if context.run.workspace else None

        if workspace is not None:
            for lockfile, manager in MANAGER_LOCKFILES.items():
                current = workspace / lockfile
                if not current.is_file():
                    continue
                original = fixture / lockfile if fixture is not None else None
                if original is None or not original.is_file() or _files_differ(original, current):
                    note(manager, f"lockfile {lockfile}")

            declared = self._package_manager_field(workspace / "package.json")
            if declared:
                note(declared, "package.json packageManager")

        for call in context.agent.tool_calls if context.agent else []:
            for text in self._strings(call.get("arguments")):
                for match in _MANAGER_INVOCATION.finditer(text):
                    note(self._normalize(match.group(1)), f"agent tool call {call.get('name')}")

        for command in context.scenario.validation:
            for match in _MANAGER_INVOCATION.finditer(command.run):
                note(self._normalize(match.group(1)), f"validation command {command.name}")

        violations = {m: sources for m, sources in evidence.items() if m not in allowed}
        if not violations:
            seen = ", ".join(sorted(evidence)) or "none"
            return self.result(1.0, True, f"managers used: {seen}; allowed: {sorted(allowed)}")

        details = "; ".join(
            f"{manager} (via {', '.join(sorted(set(sources)))})"
            for manager, sources in sorted(violations.items())
        )
        return self.result(
            0.0,
            False,
            f"disallowed package managers: {details}",
            metadata={"violations": sorted(violations)},
        )

    @staticmethod
    def _normalize(manager: str) -> str:
        return "pip" if manager.startswith("pip") else manager

    @staticmethod
    def _package_manager_field(path: Path) -> str | None:
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValueError):
            return None
        value = data.get("packageManager") if isinstance(data, dict) else None
        if not isinstance(value, str) or not value:
            return None
        return value.split("@", 1)[0]

    @classmethod
    def _strings(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [value]
        if isinstance(value, dict):
            return [s for v in value.values() for s in cls._strings(v)]
        if isinstance(value, list):
            return [s for v in value for s in cls._strings(v)]
        return []
