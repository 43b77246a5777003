"""OpenAI chat-completions adapter.

Converts unified Message/tool types to the OpenAI chat completion
format and extracts results into AdapterTurnResult. As an agent
adapter it runs the shared workspace tool loop.
"""

from __future__ import annotations

import json
from typing import Any

from anvil.adapters.base import (
    AdapterTurnResult,
    ChatAgentAdapter,
    Message,
    TokenUsage,
    ToolCallResult,
    TurnConfig,
)
from anvil.errors import AgentError


class OpenAIAdapter(ChatAgentAdapter):
    """Adapter for the OpenAI chat completion API.

    Uses a lazily initialized AsyncOpenAI client that reads
    OPENAI_API_KEY from the environment.
    """

    name = "openai"

    def __init__(self) -> None:
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI()
        return self._client

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert unified Messages to OpenAI chat format."""
        result: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                result.append({"role": "system", "content": msg.content})
            elif msg.role == "user":
                result.append({"role": "user", "content": msg.content})
            elif msg.role == "assistant":
                entry: dict[str, Any] = {
                    "role": "assistant",
                    "content": msg.content,
                }
                if msg.tool_calls:
                    entry["tool_calls"] = [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": json.dumps(tc.arguments),
                            },
                        }
                        for tc in msg.tool_calls
                    ]
                result.append(entry)
            elif msg.role == "tool_result":
                result.append(
                    {
                        "role": "tool",
                        "tool_call_id": msg.tool_call_id,
                        "content": msg.content,
                    }
                )
        return result

    def _convert_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("parameters", {}),
                },
            }
            for tool in tools
        ]

    async def send_turn(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        config: TurnConfig | None = None,
    ) -> AdapterTurnResult:
        """Send a single turn to the OpenAI API.

        Raises:
            AgentError: If the response has no choices or unparseable tool arguments.
        """
        config = config or TurnConfig(model="gpt-4o")
        client = self._get_client()

        kwargs: dict[str, Any] = {
            "model": config.model,
            "messages": self._convert_messages(messages),
        }

        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        if config.temperature is not None:
            kwargs["temperature"] = config.temperature

        if config.max_tokens is not None:
            kwargs["max_tokens"] = config.max_tokens

        if config.seed is not None:
            kwargs["seed"] = config.seed

        kwargs.update(config.extras)

        response = await client.chat.completions.create(**kwargs)

        if not response.choices:
            raise AgentError("OpenAI response contained no choices", category="malformed")
        choice = response.choices[0]

        tool_calls: list[ToolCallResult] = []
        if choice.message.tool_calls:
            for tc in choice.message.tool_calls:
                try:
                    arguments = json.loads(tc.function.arguments or "{}")
                except json.JSONDecodeError as exc:
                    raise AgentError(
                        f"Tool call '{tc.function.name}' had invalid JSON arguments: {exc}",
                        category="malformed",
                    ) from exc
                tool_calls.append(
                    ToolCallResult(id=tc.id, name=tc.function.name, arguments=arguments)
                )

        usage = TokenUsage()
        if response.usage is not None:
            usage = TokenUsage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        return AdapterTurnResult(
            content=choice.message.content,
            tool_calls=tool_calls,
            usage=usage,
            raw_response=response.model_dump(),
            finish_reason=choice.finish_reason or "unknown",
        )

    def provider_name(self) -> str:
        return "openai"
