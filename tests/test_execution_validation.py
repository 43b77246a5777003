"""Tests for anvil.execution.validation - sequential command runner."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import pytest

from anvil.execution.validation import ValidationRunner, pad_skipped, skipped_result
from anvil.models.result import (
    SKIPPED_EXIT_CODE,
    SPAWN_FAILURE_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
)
from anvil.models.scenario import ValidationCommand


def _cmd(name: str, run: str, kind: str = "other", **kwargs) -> ValidationCommand:
    return ValidationCommand(name=name, run=run, kind=kind, **kwargs)


class TestOrderingAndPolicy:
    @pytest.mark.asyncio
    async def test_run_all_keeps_going_after_failure(self, tmp_path: Path):
        commands = [
            _cmd("install", "exit 0", "install"),
            _cmd("test", "exit 1", "test"),
            _cmd("lint", "echo linted", "lint"),
        ]
        results = await ValidationRunner().run(commands, tmp_path)

        assert [r.name for r in results] == ["install", "test", "lint"]
        assert [r.exit_code for r in results] == [0, 1, 0]
        assert results[0].succeeded is True
        assert results[1].succeeded is False
        assert results[2].stdout.strip() == "linted"

    @pytest.mark.asyncio
    async def test_stop_on_failure_skips_rest(self, tmp_path: Path):
        commands = [_cmd("a", "exit 2"), _cmd("b", "exit 0"), _cmd("c", "exit 0")]
        results = await ValidationRunner().run(commands, tmp_path, policy="stop_on_failure")

        assert len(results) == 3
        assert results[0].exit_code == 2
        assert all(r.skipped and r.exit_code == SKIPPED_EXIT_CODE for r in results[1:])
        assert results[1].succeeded is False

    @pytest.mark.asyncio
    async def test_commands_run_in_workspace_sequentially(self, tmp_path: Path):
        commands = [_cmd("write", "echo one > log.txt"), _cmd("append", "echo two >> log.txt")]
        await ValidationRunner().run(commands, tmp_path)
        assert (tmp_path / "log.txt").read_text().split() == ["one", "two"]

    @pytest.mark.asyncio
    async def test_results_list_is_filled_in_place(self, tmp_path: Path):
        collected = []
        returned = await ValidationRunner().run([_cmd("a", "exit 0")], tmp_path, results=collected)
        assert returned is collected
        assert len(collected) == 1


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_timeout_kills_and_returns(self, tmp_path: Path):
        start = time.monotonic()
        results = await ValidationRunner().run(
            [_cmd("slow", "sleep 30"), _cmd("after", "exit 0")],
            tmp_path,
            per_command_timeout=0.5,
        )
        assert time.monotonic() - start < 10
        assert results[0].timed_out is True
        assert results[0].exit_code == TIMEOUT_EXIT_CODE
        assert results[1].exit_code == 0

    @pytest.mark.asyncio
    async def test_per_command_timeout_overrides_default(self, tmp_path: Path):
        results = await ValidationRunner().run(
            [_cmd("slow", "sleep 30", timeout_seconds=0.3)],
            tmp_path,
            per_command_timeout=600,
        )
        assert results[0].timed_out is True

    @pytest.mark.asyncio
    async def test_child_processes_are_killed(self, tmp_path: Path):
        marker = tmp_path / "late.txt"
        results = await ValidationRunner().run(
            [_cmd("tree", f"(sleep 1; touch {marker}) & sleep 30")],
            tmp_path,
            per_command_timeout=0.3,
        )
        await asyncio.sleep(1.5)
        assert results[0].timed_out is True
        assert not marker.exists()


class TestFailures:
    @pytest.mark.asyncio
    async def test_spawn_failure_is_recorded(self, tmp_path: Path):
        results = await ValidationRunner().run([_cmd("a", "exit 0")], tmp_path / "missing")
        assert results[0].exit_code == SPAWN_FAILURE_EXIT_CODE
        assert results[0].stderr

    @pytest.mark.asyncio
    async def test_secrets_are_redacted(self, tmp_path: Path):
        results = await ValidationRunner().run(
            [_cmd("leaky", "echo OPENAI_API_KEY=sk-abcdefghijklmnopqrstuvwxyz")],
            tmp_path,
        )
        assert "sk-abcdefghijklmnopqrstuvwxyz" not in results[0].stdout
        assert "[REDACTED]" in results[0].stdout

    @pytest.mark.asyncio
    async def test_output_keeps_tail_when_truncated(self, tmp_path: Path):
        runner = ValidationRunner(max_output_chars=200)
        results = await runner.run(
            [_cmd("noisy", "seq 1 5000; echo FAILED: 3 tests")],
            tmp_path,
        )
        assert results[0].stdout.startswith("[truncated]")
        assert results[0].stdout.rstrip().endswith("FAILED: 3 tests")
        assert len(results[0].stdout) <= 200 + len("[truncated] ...")


class TestPadSkipped:
    def test_pads_missing_tail(self):
        commands = [_cmd("a", "x"), _cmd("b", "y")]
        padded = pad_skipped(commands, [skipped_result(commands[0])])
        assert [r.name for r in padded] == ["a", "b"]
        assert padded[1].skipped is True
        assert padded[1].exit_code == SKIPPED_EXIT_CODE

    def test_complete_list_is_unchanged(self):
        commands = [_cmd("a", "x")]
        done = [skipped_result(commands[0])]
        assert pad_skipped(commands, done) == done
