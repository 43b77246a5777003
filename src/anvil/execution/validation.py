"""Validation runner: executes scenario commands against a workspace.

Commands run strictly one after another, in declared order, each in its
own shell with the workspace as the working directory and a hard
timeout. The runner always returns one ValidationResult per declared
command.
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Literal

import structlog

from anvil.errors import CommandError
from anvil.execution.redaction import sanitize_output
from anvil.models.config import DEFAULT_COMMAND_TIMEOUT_SECONDS
from anvil.models.result import (
    SKIPPED_EXIT_CODE,
    SPAWN_FAILURE_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    ValidationResult,
)
from anvil.models.scenario import ValidationCommand

logger = structlog.get_logger(__name__)

ValidationPolicy = Literal["run_all", "stop_on_failure"]

# How long to wait for a killed process to be reaped.
_REAP_TIMEOUT_SECONDS = 5.0


def kill_process_tree(process: asyncio.subprocess.Process) -> None:
    """SIGKILL the command's process group (the shell and its children)."""
    if process.returncode is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


def skipped_result(command: ValidationCommand) -> ValidationResult:
    return ValidationResult(
        name=command.name,
        kind=command.kind,
        command=command.run,
        exit_code=SKIPPED_EXIT_CODE,
        skipped=True,
    )


class ValidationRunner:
    """Runs validation commands sequentially under per-command timeouts."""

    def __init__(self, max_output_chars: int = 20_000) -> None:
        self.max_output_chars = max_output_chars

    async def run(
        self,
        commands: Sequence[ValidationCommand],
        workspace: Path,
        per_command_timeout: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        policy: ValidationPolicy = "run_all",
        results: list[ValidationResult] | None = None,
    ) -> list[ValidationResult]:
        """Run every command and return results in declared order.

        Under ``run_all`` each command runs regardless of earlier
        failures. Under ``stop_on_failure`` the commands after the first
        failure are recorded as skipped. When *results* is given, each
        result is appended to it as soon as it exists, so a caller that
        cancels the run keeps the finished ones.
        """
        results = [] if results is None else results
        halted = False

        for command in commands:
            if halted:
                results.append(skipped_result(command))
                logger.info("validation.command_skipped", command=command.name)
                continue

            timeout = command.timeout_seconds or per_command_timeout
            result = await self._run_one(command, Path(workspace), timeout)
            results.append(result)

            if policy == "stop_on_failure" and not result.succeeded:
                halted = True

        return results

    async def _run_one(
        self,
        command: ValidationCommand,
        workspace: Path,
        timeout: float,
    ) -> ValidationResult:
        log = logger.bind(command=command.name, kind=command.kind)
        start = time.perf_counter()

        try:
            process = await asyncio.create_subprocess_shell(
                command.run,
                cwd=workspace,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=os.name == "posix",
            )
        except OSError as exc:
            error = CommandError(command.run, str(exc))
            log.warning("validation.spawn_failed", error=error.message)
            return ValidationResult(
                name=command.name,
                kind=command.kind,
                command=command.run,
                exit_code=SPAWN_FAILURE_EXIT_CODE,
                stderr=error.message,
                duration_seconds=time.perf_counter() - start,
            )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            kill_process_tree(process)
            await self._reap(process)
            elapsed = time.perf_counter() - start
            log.warning("validation.command_timed_out", timeout_seconds=timeout)
            return ValidationResult(
                name=command.name,
                kind=command.kind,
                command=command.run,
                exit_code=TIMEOUT_EXIT_CODE,
                stderr=f"Command timed out after {timeout:g}s",
                duration_seconds=elapsed,
                timed_out=True,
            )
        except asyncio.CancelledError:
            kill_process_tree(process)
            log.info("validation.command_cancelled")
            raise

        elapsed = time.perf_counter() - start
        exit_code = process.returncode if process.returncode is not None else SPAWN_FAILURE_EXIT_CODE
        log.info(
            "validation.command_finished",
            exit_code=exit_code,
            duration_seconds=round(elapsed, 3),
        )
        return ValidationResult(
            name=command.name,
            kind=command.kind,
            command=command.run,
            exit_code=exit_code,
            stdout=sanitize_output(stdout, self.max_output_chars),
            stderr=sanitize_output(stderr, self.max_output_chars),
            duration_seconds=elapsed,
        )

    async def _reap(self, process: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.wait_for(process.wait(), timeout=_REAP_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("validation.reap_timed_out", pid=process.pid)


def pad_skipped(
    commands: Sequence[ValidationCommand],
    results: list[ValidationResult],
) -> list[ValidationResult]:
    """Complete a partial result list with skipped entries for the rest."""
    return list(results) + [skipped_result(c) for c in commands[len(results):]]
