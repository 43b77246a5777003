"""Run context builder for judge evaluation.

Assembles the block the judge model sees: the task prompt, the code
changes, the validation outcomes, the agent's tool calls and its own
summary. Every section is size-capped.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from anvil.execution.redaction import redact_content

if TYPE_CHECKING:
    from anvil.evaluation.evaluators.base import EvaluationContext

MAX_PROMPT_CHARS = 4_000
MAX_DIFF_CHARS = 30_000
MAX_OUTPUT_TAIL_CHARS = 1_500
MAX_SUMMARY_CHARS = 3_000


def _cap(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "\n... [truncated]"


def build_tool_call_summary(tool_calls: list[dict], max_arg_length: int = 100) -> str:
    """Build a concise one-line-per-call summary."""
    if not tool_calls:
        return "No tool calls were made."

    lines = []
    for i, tc in enumerate(tool_calls, 1):
        name = tc.get("name", "unknown")
        args_str = json.dumps(tc.get("arguments", {}), ensure_ascii=False)
        if len(args_str) > max_arg_length:
            args_str = args_str[:max_arg_length] + "..."
        lines.append(f"{i}. {name}({args_str})")
    return "\n".join(lines)


def build_diff_section(context: EvaluationContext) -> str:
    diff = context.diff
    if not diff.changes and not diff.dependencies:
        return "No changes were made."

    parts = [f"{c.status.value}: {c.path}" for c in diff.changes]
    if diff.dependencies:
        parts.append("")
        parts.append(f"Dependency changes ({diff.manifest}):")
        for name, delta in diff.dependencies.items():
            parts.append(f"- {name}: {delta.before or '(absent)'} -> {delta.after or '(removed)'}")

    patches = [c.patch for c in diff.changes if c.patch]
    if patches:
        parts.append("")
        parts.append("```diff")
        parts.append(_cap("".join(patches), MAX_DIFF_CHARS))
        parts.append("```")
    return "\n".join(parts)


def build_validation_section(context: EvaluationContext) -> str:
    if not context.validation:
        return "No validation commands were declared."

    lines = []
    for r in context.validation:
        if r.skipped:
            lines.append(f"- {r.name} ({r.kind}): skipped")
            continue
        outcome = "timed out" if r.timed_out else f"exit {r.exit_code}"
        lines.append(f"- {r.name} ({r.kind}) `{r.command}`: {outcome}")
        if not r.succeeded:
            tail = (r.stderr or r.stdout)[-MAX_OUTPUT_TAIL_CHARS:]
            if tail.strip():
                lines.append(f"  ```\n  {tail.strip()}\n  ```")
    return "\n".join(lines)


def build_context(context: EvaluationContext) -> str:
    """Build the markdown context block the judge sees."""
    sections = []

    if context.prompt:
        sections.append(f"## Task Given to the Agent\n\n{_cap(context.prompt, MAX_PROMPT_CHARS)}")

    sections.append(f"## Code Changes\n\n{build_diff_section(context)}")
    sections.append(f"## Validation Results\n\n{build_validation_section(context)}")

    agent = context.agent
    tool_calls = agent.tool_calls if agent else []
    sections.append(f"## Tool Calls Made\n\n{build_tool_call_summary(tool_calls)}")

    summary = agent.transcript_summary if agent and agent.transcript_summary else "(empty)"
    sections.append(f"## Agent's Final Summary\n\n{_cap(summary, MAX_SUMMARY_CHARS)}")

    return redact_content("\n\n".join(sections))
