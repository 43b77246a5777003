"""Tests for anvil.adapters.registry - adapter lookup by name."""

from __future__ import annotations

import shlex
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from anvil.adapters.anthropic_adapter import AnthropicAdapter
from anvil.adapters.base import AgentConfig, BaseAgentAdapter, ChatBackend
from anvil.adapters.echo_adapter import EchoAdapter
from anvil.adapters.openai_adapter import OpenAIAdapter
from anvil.adapters.registry import BUILTIN_ADAPTERS, get_adapter, get_chat_backend
from anvil.errors import ConfigurationError
from anvil.models.run import UNAVAILABLE


class NotAnAdapter:
    pass


class TestGetAdapter:
    def test_builtin_names(self):
        assert isinstance(get_adapter("echo"), EchoAdapter)
        assert isinstance(get_adapter("openai"), OpenAIAdapter)
        assert isinstance(get_adapter("anthropic"), AnthropicAdapter)

    def test_dotted_path(self):
        adapter = get_adapter("anvil.adapters.echo_adapter.EchoAdapter")
        assert isinstance(adapter, EchoAdapter)

    def test_unknown_name_lists_builtins(self):
        with pytest.raises(ConfigurationError, match="claude-cli"):
            get_adapter("nope")

    def test_non_adapter_class_rejected(self):
        with pytest.raises(ConfigurationError, match="not a subclass"):
            get_adapter(f"{__name__}.NotAnAdapter")

    def test_missing_attribute(self):
        with pytest.raises(ConfigurationError, match="no attribute"):
            get_adapter("anvil.adapters.echo_adapter.Missing")

    def test_missing_sdk_gives_install_hint(self):
        real_import = __import__("importlib").import_module

        def fake_import(name, *args, **kwargs):
            if name == "openai":
                raise ImportError("No module named 'openai'")
            return real_import(name, *args, **kwargs)

        with patch("anvil.adapters.registry.importlib.import_module", side_effect=fake_import):
            with pytest.raises(ConfigurationError, match=r"anvil-bench\[openai\]"):
                get_adapter("openai")


class TestGetChatBackend:
    def test_hosted_adapter_is_a_backend(self):
        backend = get_chat_backend("anthropic")
        assert isinstance(backend, ChatBackend)

    def test_echo_is_not_a_backend(self):
        with pytest.raises(ConfigurationError, match="ChatBackend"):
            get_chat_backend("echo")


def _stub_hosted_client(adapter: BaseAgentAdapter) -> None:
    client = MagicMock()
    if isinstance(adapter, OpenAIAdapter):
        response = MagicMock()
        response.choices[0].message.content = "ok"
        response.choices[0].message.tool_calls = None
        response.choices[0].finish_reason = "stop"
        response.usage.prompt_tokens = 5
        response.usage.completion_tokens = 1
        response.usage.total_tokens = 6
        response.model_dump.return_value = {}
        client.chat.completions.create = AsyncMock(return_value=response)
    else:
        block = MagicMock()
        block.type = "text"
        block.text = "ok"
        response = MagicMock()
        response.content = [block]
        response.stop_reason = "end_turn"
        response.usage.input_tokens = 5
        response.usage.output_tokens = 1
        response.model_dump.return_value = {}
        client.messages.create = AsyncMock(return_value=response)
    adapter._client = client


class TestTelemetrySentinel:
    """Every builtin variant reports UNAVAILABLE cost when it has no cost data."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", sorted(BUILTIN_ADAPTERS))
    async def test_cost_unavailable(self, name: str, tmp_path: Path):
        adapter = get_adapter(name)
        extras = {}
        if name in ("command", "claude-cli"):
            extras["command"] = f"{shlex.quote(sys.executable)} -c pass"
        if name in ("openai", "anthropic"):
            _stub_hosted_client(adapter)

        result = await adapter.run("p", tmp_path, AgentConfig(model="unpriced-model", extras=extras))

        assert result.success is True, result.failure
        assert result.telemetry.cost_usd == UNAVAILABLE
        assert set(result.telemetry.model_dump()) == {
            "tokens_in",
            "tokens_out",
            "cost_usd",
            "tool_calls",
            "turns",
            "duration_seconds",
        }
