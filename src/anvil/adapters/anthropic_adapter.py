"""Anthropic messages-API adapter.

Converts unified Message/tool types to the Anthropic messages format
and extracts results into AdapterTurnResult. As an agent adapter it
runs the shared workspace tool loop.
"""

from __future__ import annotations

from typing import Any

from anvil.adapters.base import (
    AdapterTurnResult,
    ChatAgentAdapter,
    Message,
    TokenUsage,
    ToolCallResult,
    TurnConfig,
)


class AnthropicAdapter(ChatAgentAdapter):
    """Adapter for the Anthropic messages API.

    Uses a lazily initialized AsyncAnthropic client that reads
    ANTHROPIC_API_KEY from the environment.
    """

    name = "anthropic"

    def __init__(self) -> None:
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic()
        return self._client

    def _extract_system(
        self, messages: list[Message]
    ) -> tuple[str | None, list[Message]]:
        """Split out the system message; Anthropic takes it as a separate parameter."""
        system_prompt: str | None = None
        remaining: list[Message] = []
        for msg in messages:
            if msg.role == "system":
                system_prompt = msg.content
            else:
                remaining.append(msg)
        return system_prompt, remaining

    def _convert_message(self, msg: Message) -> dict[str, Any]:
        if msg.role == "assistant":
            content: list[dict[str, Any]] = []
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            if msg.tool_calls:
                for tc in msg.tool_calls:
                    content.append(
                        {
                            "type": "tool_use",
                            "id": tc.id,
                            "name": tc.name,
                            "input": tc.arguments,
                        }
                    )
            return {"role": "assistant", "content": content}
        if msg.role == "tool_result":
            # Tool results are sent as user messages with tool_result content blocks
            return {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": msg.tool_call_id,
                        "content": msg.content,
                    }
                ],
            }
        return {"role": "user", "content": msg.content}

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages, merging consecutive tool results into one user turn."""
        converted: list[dict[str, Any]] = []
        for msg in messages:
            entry = self._convert_message(msg)
            if (
                msg.role == "tool_result"
                and converted
                and converted[-1]["role"] == "user"
                and isinstance(converted[-1]["content"], list)
            ):
                converted[-1]["content"].extend(entry["content"])
            else:
                converted.append(entry)
        return converted

    def _convert_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Anthropic uses 'input_schema' instead of 'parameters'."""
        return [
            {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "input_schema": tool.get("parameters", {}),
            }
            for tool in tools
        ]

    async def send_turn(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        config: TurnConfig | None = None,
    ) -> AdapterTurnResult:
        """Send a single turn to the Anthropic API."""
        config = config or TurnConfig(model="claude-sonnet-4-5")
        client = self._get_client()

        system_prompt, remaining_messages = self._extract_system(messages)

        kwargs: dict[str, Any] = {
            "model": config.model,
            "messages": self._convert_messages(remaining_messages),
            "max_tokens": config.max_tokens if config.max_tokens is not None else 4096,
        }

        if system_prompt is not None:
            kwargs["system"] = system_prompt

        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        if config.temperature is not None:
            kwargs["temperature"] = config.temperature

        kwargs.update(config.extras)

        response = await client.messages.create(**kwargs)

        content_parts: list[str] = []
        tool_calls: list[ToolCallResult] = []

        for block in response.content:
            if block.type == "text":
                content_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCallResult(
                        id=block.id,
                        name=block.name,
                        # block.input is already a dict, no json.loads needed
                        arguments=block.input,
                    )
                )

        content = "\n".join(content_parts) if content_parts else None

        usage = TokenUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )

        return AdapterTurnResult(
            content=content,
            tool_calls=tool_calls,
            usage=usage,
            raw_response=response.model_dump(),
            finish_reason=response.stop_reason or "unknown",
        )

    def provider_name(self) -> str:
        return "anthropic"
