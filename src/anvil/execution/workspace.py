"""Workspace materialization for benchmark runs.

Each run gets its own copy of the scenario fixture under
``<root>/<scenario_id>/<tier>/<agent>/<run_id>``. The identity
``(scenario_id, tier, agent, iteration)`` is reserved before any
filesystem work so two concurrent runs can never share a workspace.
"""

from __future__ import annotations

import asyncio
import re
import shutil
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from anvil.errors import DuplicateWorkspaceError, WorkspaceError
from anvil.models.run import RunConfig, WorkspaceHandle

if TYPE_CHECKING:
    from anvil.loader import LoadedScenario

logger = structlog.get_logger(__name__)

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9._-]")


def _segment(value: str) -> str:
    """Make a value safe to use as a single path segment."""
    cleaned = _UNSAFE_SEGMENT.sub("_", value).strip(".")
    return cleaned or "_"


class WorkspaceManager:
    """Creates, tracks and removes per-run workspace copies."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._reserved: set[tuple[str, str, str, int]] = set()
        self._lock = threading.Lock()

    def workspace_path(self, run_config: RunConfig, run_id: str) -> Path:
        return (
            self.root
            / _segment(run_config.scenario_id)
            / _segment(run_config.tier)
            / _segment(run_config.agent)
            / _segment(run_id)
        )

    def reserve(self, identity: tuple[str, str, str, int]) -> None:
        """Claim a workspace identity.

        Raises:
            DuplicateWorkspaceError: If the identity is already held.
        """
        with self._lock:
            if identity in self._reserved:
                raise DuplicateWorkspaceError(identity)
            self._reserved.add(identity)

    def _unreserve(self, identity: tuple[str, str, str, int]) -> None:
        with self._lock:
            self._reserved.discard(identity)

    async def prepare(
        self,
        scenario: LoadedScenario,
        run_config: RunConfig,
        run_id: str,
    ) -> WorkspaceHandle:
        """Copy the scenario fixture into a fresh workspace.

        The identity is reserved first; on any failure the reservation
        is dropped again and no partial directory is left behind.

        Raises:
            DuplicateWorkspaceError: Identity already in use (no filesystem work done).
            WorkspaceError: Fixture missing or copy failed.
        """
        identity = run_config.identity
        self.reserve(identity)
        try:
            dest = self.workspace_path(run_config, run_id)
            await asyncio.to_thread(self._copy_fixture, scenario.fixture_dir, dest)
        except BaseException:
            self._unreserve(identity)
            raise

        logger.info("workspace.prepared", path=str(dest), fixture=str(scenario.fixture_dir))
        return WorkspaceHandle(path=dest, fixture=scenario.fixture_dir, identity=identity)

    def _copy_fixture(self, fixture: Path, dest: Path) -> None:
        if not fixture.is_dir():
            raise WorkspaceError(f"Fixture directory not found: {fixture}")
        if dest.exists():
            raise WorkspaceError(f"Workspace path already exists: {dest}")

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(fixture, dest, symlinks=True)
        except (OSError, shutil.Error) as exc:
            shutil.rmtree(dest, ignore_errors=True)
            raise WorkspaceError(f"Failed to copy fixture {fixture} to {dest}: {exc}") from exc

    def release(self, handle: WorkspaceHandle) -> None:
        """Free the identity reservation. The directory is kept."""
        self._unreserve(handle.identity)

    def cleanup(self, handle: WorkspaceHandle) -> None:
        """Delete the workspace directory and free its identity."""
        try:
            shutil.rmtree(handle.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("workspace.cleanup_failed", path=str(handle.path), error=str(exc))
        else:
            logger.debug("workspace.removed", path=str(handle.path))
        self.release(handle)
