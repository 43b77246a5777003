"""ChatAgentLoop: multi-turn tool loop for hosted chat backends.

Drives a ChatBackend against a workspace, executing the file tools the
model requests and feeding their output back into the conversation
until the model produces a final answer (no tool calls), the turn
limit is hit, or the tool-call budget is spent.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from anvil.adapters.base import AgentConfig, AgentProgress, Message, TurnConfig
from anvil.adapters.tools import WORKSPACE_TOOLS, WorkspaceTools
from anvil.execution.cost import estimate_cost
from anvil.execution.retry import retry_with_backoff

if TYPE_CHECKING:
    from anvil.adapters.base import AdapterTurnResult, ChatBackend

SYSTEM_PROMPT = """You are a software engineer working inside a repository checkout.
Use the provided tools to inspect and modify files. Make the smallest set
of changes that fully completes the task. When you are done, reply with a
short summary of what you changed and do not call any more tools."""


class ChatAgentLoop:
    """Runs one prompt to completion against a ChatBackend."""

    def __init__(self, backend: ChatBackend) -> None:
        self.backend = backend

    async def run(
        self,
        prompt: str,
        workspace: Path,
        config: AgentConfig,
        progress: AgentProgress,
    ) -> None:
        """Execute the loop, recording usage and tool calls into *progress*.

        Raises whatever the backend raises once retries are exhausted;
        the adapter base class turns that into an AgentFailure.
        """
        tools = WorkspaceTools(workspace)
        messages: list[Message] = [
            Message(role="system", content=SYSTEM_PROMPT),
            Message(role="user", content=prompt),
        ]
        turn_config = TurnConfig(
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            extras=dict(config.extras),
        )
        progress.turns = 0
        progress.tool_call_count = 0
        result: AdapterTurnResult | None = None

        try:
            for _ in range(config.max_turns):
                progress.turns += 1

                result, _, _ = await retry_with_backoff(
                    coro_factory=lambda: self.backend.send_turn(
                        messages, WORKSPACE_TOOLS, turn_config
                    ),
                    max_retries=config.max_retries,
                )

                progress.add_usage(result.usage.input_tokens, result.usage.output_tokens)
                if result.content:
                    progress.final_content = result.content

                messages.append(
                    Message(
                        role="assistant",
                        content=result.content,
                        tool_calls=result.tool_calls if result.tool_calls else None,
                    )
                )

                if not result.tool_calls:
                    break

                budget_spent = False
                for tc in result.tool_calls:
                    if (
                        config.tool_call_budget is not None
                        and progress.tool_call_count >= config.tool_call_budget
                    ):
                        budget_spent = True
                        break
                    output = tools.execute(tc.name, tc.arguments)
                    progress.record_tool_call(
                        {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
                    )
                    messages.append(
                        Message(
                            role="tool_result",
                            content=output,
                            tool_call_id=tc.id,
                            tool_name=tc.name,
                        )
                    )

                if budget_spent:
                    progress.notes.append(
                        f"Stopped: tool-call budget of {config.tool_call_budget} exhausted."
                    )
                    break
            else:
                if result is not None and result.tool_calls:
                    progress.notes.append(
                        f"Stopped: max turns ({config.max_turns}) reached with tool calls pending."
                    )
        finally:
            if progress.tokens_in is not None:
                progress.cost_usd = estimate_cost(
                    config.model, progress.tokens_in, progress.tokens_out or 0
                )
