"""Subprocess-backed agent adapters.

CommandAgentAdapter runs an arbitrary agent CLI inside the workspace.
The command line comes from ``extras["command"]``, a template whose
``{prompt}``, ``{model}`` and ``{max_turns}`` placeholders are filled
per argument after shell-style splitting, so a prompt with spaces stays
a single argument.

When the CLI prints a JSON object on stdout, the fields ``result``,
``total_cost_usd``, ``num_turns`` and ``usage.input_tokens`` /
``usage.output_tokens`` are read into telemetry. Anything the output
does not carry stays unavailable.
"""

from __future__ import annotations

import asyncio
import json
import os
import shlex
from pathlib import Path

import structlog

from anvil.adapters.base import AgentConfig, AgentProgress, BaseAgentAdapter
from anvil.errors import AgentError
from anvil.execution.redaction import sanitize_output
from anvil.execution.validation import kill_process_tree

logger = structlog.get_logger(__name__)

MAX_STDERR_CHARS = 2_000


def build_argv(template: str, prompt: str, config: AgentConfig) -> list[str]:
    """Split a command template and substitute placeholders per argument."""
    values = {
        "prompt": prompt,
        "model": config.model,
        "max_turns": str(config.max_turns),
    }
    argv: list[str] = []
    for token in shlex.split(template):
        try:
            argv.append(token.format(**values))
        except (KeyError, IndexError) as exc:
            raise AgentError(
                f"Unknown placeholder {exc} in agent command template",
                category="malformed",
            ) from exc
    if not argv:
        raise AgentError("Agent command template is empty", category="malformed")
    return argv


def parse_cli_output(stdout: str, progress: AgentProgress) -> None:
    """Read usage and the final message from CLI output into *progress*.

    Falls back to the raw text when stdout is not a JSON object.
    """
    text = stdout.strip()
    try:
        data = json.loads(text) if text else None
    except json.JSONDecodeError:
        data = None

    if not isinstance(data, dict):
        progress.final_content = text or None
        return

    result = data.get("result")
    progress.final_content = result if isinstance(result, str) else text

    cost = data.get("total_cost_usd", data.get("cost_usd"))
    if isinstance(cost, (int, float)):
        progress.cost_usd = float(cost)

    turns = data.get("num_turns")
    if isinstance(turns, int):
        progress.turns = turns

    usage = data.get("usage")
    if isinstance(usage, dict):
        tokens_in = usage.get("input_tokens")
        tokens_out = usage.get("output_tokens")
        if isinstance(tokens_in, int) and isinstance(tokens_out, int):
            progress.add_usage(tokens_in, tokens_out)

    if data.get("is_error") is True:
        raise AgentError(
            f"Agent CLI reported an error: {progress.final_content}",
            category="process",
        )


class CommandAgentAdapter(BaseAgentAdapter):
    """Runs an agent CLI as a subprocess with the workspace as cwd."""

    name = "command"
    default_command: str | None = None

    def command_template(self, config: AgentConfig) -> str:
        template = config.extras.get("command", self.default_command)
        if not template:
            raise AgentError(
                f"Adapter '{self.name}' needs extras.command, e.g. "
                f"'my-agent --model {{model}} {{prompt}}'",
                category="malformed",
            )
        return str(template)

    async def _execute(
        self,
        prompt: str,
        workspace: Path,
        config: AgentConfig,
        progress: AgentProgress,
    ) -> None:
        argv = build_argv(self.command_template(config), prompt, config)
        logger.debug("agent.spawning", adapter=self.name, program=argv[0])

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=workspace,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=os.name == "posix",
            )
        except OSError as exc:
            raise AgentError(
                f"Could not start agent command '{argv[0]}': {exc}",
                category="process",
            ) from exc

        try:
            stdout, stderr = await process.communicate()
        except BaseException:
            # tool processes spawned by the CLI share its process group
            kill_process_tree(process)
            if process.returncode is None:
                await process.wait()
            raise

        output = stdout.decode("utf-8", errors="replace")
        if process.returncode != 0:
            detail = sanitize_output(stderr, MAX_STDERR_CHARS) or sanitize_output(
                stdout, MAX_STDERR_CHARS
            )
            raise AgentError(
                f"Agent command exited with code {process.returncode}: {detail}",
                category="process",
            )

        parse_cli_output(output, progress)


class ClaudeCLIAdapter(CommandAgentAdapter):
    """Claude CLI in non-interactive print mode with JSON output."""

    name = "claude-cli"
    default_command = (
        "claude -p {prompt} --output-format json --model {model} "
        "--max-turns {max_turns} --permission-mode acceptEdits"
    )

    def command_template(self, config: AgentConfig) -> str:
        return str(config.extras.get("command", self.default_command))
