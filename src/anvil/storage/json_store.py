"""JSON file storage for anvil run records.

Every finished RunRecord is written under <storage_dir>/runs/ before it
is submitted to the result sink, and its sync status is updated after.
Records the sink did not acknowledge stay ``unsynced`` and can be
resubmitted later. Uses atomic writes to prevent corruption.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from anvil.errors import PersistenceError
from anvil.models.result import RunRecord, SyncStatus

if TYPE_CHECKING:
    from anvil.storage.sink import ResultSink

logger = structlog.get_logger(__name__)


def _atomic_write(path: Path, content: str) -> None:
    """Write to a sibling .tmp file, then rename over the target."""
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(content, encoding="utf-8")
    os.replace(tmp_path, path)


class RunStore:
    """Persist and query RunRecord objects as JSON files.

    File layout:
        <storage_dir>/
            runs/
                {run-id}.json    # Individual run records
            index.json           # Scenario id -> [run IDs] mapping
    """

    def __init__(self, project_root: Path, storage_dir: str | None = None) -> None:
        self.storage_dir = Path(project_root) / (storage_dir or ".anvil")
        self.runs_dir = self.storage_dir / "runs"
        self.index_path = self.storage_dir / "index.json"

    def ensure_dirs(self) -> None:
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def _record_path(self, run_id: str) -> Path:
        return self.runs_dir / f"{run_id}.json"

    def save_record(self, record: RunRecord) -> Path:
        """Write a RunRecord atomically and add it to the index.

        Returns:
            Path of the written file.
        """
        self.ensure_dirs()
        path = self._record_path(record.run_id)
        is_new = not path.exists()
        _atomic_write(path, record.model_dump_json(indent=2))
        if is_new:
            self._update_index(record.scenario_id, record.run_id)
        return path

    def load_record(self, run_id: str) -> RunRecord:
        """Load a RunRecord from its JSON file.

        Raises:
            FileNotFoundError: If no run with that ID exists.
        """
        content = self._record_path(run_id).read_text(encoding="utf-8")
        return RunRecord.model_validate_json(content)

    def list_runs(self, scenario_id: str | None = None) -> list[str]:
        """List run IDs, optionally filtered by scenario id."""
        if scenario_id is not None:
            return list(self._load_index().get(scenario_id, []))
        if not self.runs_dir.exists():
            return []
        return sorted(f.name.removesuffix(".json") for f in self.runs_dir.glob("*.json"))

    def mark_sync(
        self,
        run_id: str,
        status: SyncStatus,
        remote_id: str | None = None,
    ) -> RunRecord:
        """Update the sync status (and remote id) of a stored record."""
        record = self.load_record(run_id)
        update: dict[str, object] = {"sync_status": status}
        if remote_id is not None:
            update["remote_id"] = remote_id
        record = record.model_copy(update=update)
        _atomic_write(self._record_path(run_id), record.model_dump_json(indent=2))
        return record

    def list_unsynced(self) -> list[RunRecord]:
        """Stored records the sink has not acknowledged."""
        records = []
        for run_id in self.list_runs():
            record = self.load_record(run_id)
            if record.sync_status != SyncStatus.synced:
                records.append(record)
        return records

    async def resubmit_unsynced(self, sink: ResultSink) -> dict[str, bool]:
        """Retry submission of every unsynced record.

        Returns:
            Mapping of run id -> True if the sink acknowledged it.
        """
        outcome: dict[str, bool] = {}
        for record in self.list_unsynced():
            try:
                receipt = await sink.submit(record)
            except PersistenceError as exc:
                logger.warning("sink.resubmit_failed", run_id=record.run_id, error=exc.message)
                self.mark_sync(record.run_id, SyncStatus.unsynced)
                outcome[record.run_id] = False
                continue
            self.mark_sync(record.run_id, SyncStatus.synced, remote_id=receipt.remote_id)
            outcome[record.run_id] = True
        return outcome

    def _load_index(self) -> dict[str, list[str]]:
        if self.index_path.exists():
            return json.loads(self.index_path.read_text(encoding="utf-8"))
        return {}

    def _update_index(self, scenario_id: str, run_id: str) -> None:
        index = self._load_index()
        index.setdefault(scenario_id, []).append(run_id)
        _atomic_write(self.index_path, json.dumps(index, indent=2, ensure_ascii=False))
