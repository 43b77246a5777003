"""Tests for anvil.models.result - stage artifacts and the run record."""

import pytest
from pydantic import ValidationError

from anvil.models.result import (
    SKIPPED_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    ChangeStatus,
    DependencyDelta,
    DiffArtifact,
    EvaluatorResult,
    FileChange,
    RunRecord,
    ScoreReport,
    SyncStatus,
    ValidationResult,
)
from anvil.models.run import Run, RunConfig


def _record() -> RunRecord:
    config = RunConfig(scenario_id="s", tier="easy", agent="echo", model="m")
    return RunRecord(
        run=Run(run_id="abc", config=config),
        scenario_id="s",
        validation=[ValidationResult(name="test", kind="test", command="npm test", exit_code=1)],
        diff=DiffArtifact(
            changes=[FileChange(path="package.json", status=ChangeStatus.modified, patch="@@")],
            dependencies={"react": DependencyDelta(before="^17.0.2", after="^18.2.0")},
            manifest="package.json",
        ),
        score=ScoreReport(total=6.5, weight_used=2.0),
    )


class TestValidationResult:
    def test_succeeded_only_on_clean_zero_exit(self):
        ok = ValidationResult(name="a", kind="test", command="x", exit_code=0)
        timed_out = ValidationResult(name="a", kind="test", command="x", exit_code=TIMEOUT_EXIT_CODE, timed_out=True)
        skipped = ValidationResult(name="a", kind="test", command="x", exit_code=SKIPPED_EXIT_CODE, skipped=True)
        assert ok.succeeded is True
        assert timed_out.succeeded is False
        assert skipped.succeeded is False


class TestDiffArtifact:
    def test_empty(self):
        assert DiffArtifact().is_empty is True

    def test_paths_and_lookup(self):
        diff = DiffArtifact(
            changes=[
                FileChange(path="a.txt", status=ChangeStatus.added),
                FileChange(path="b.txt", status=ChangeStatus.removed),
            ]
        )
        assert diff.paths() == ["a.txt", "b.txt"]
        assert diff.paths(ChangeStatus.removed) == ["b.txt"]
        assert diff.get("a.txt").status == ChangeStatus.added
        assert diff.get("c.txt") is None


class TestScores:
    def test_evaluator_score_bounds(self):
        with pytest.raises(ValidationError):
            EvaluatorResult(evaluator_id="x", score=1.5, weight=1.0)

    def test_total_bounds(self):
        with pytest.raises(ValidationError):
            ScoreReport(total=10.5)


class TestRunRecord:
    def test_defaults(self):
        record = _record()
        assert record.run_id == "abc"
        assert record.sync_status == SyncStatus.pending
        assert record.remote_id is None

    def test_json_round_trip(self):
        record = _record()
        restored = RunRecord.model_validate_json(record.model_dump_json())
        assert restored == record
        assert restored.diff.dependencies["react"].after == "^18.2.0"
