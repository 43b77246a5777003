"""Tests for transient error retry with backoff."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from anvil.errors import AgentError
from anvil.execution.retry import is_transient, retry_after, retry_with_backoff


class _StatusError(Exception):
    def __init__(self, status_code: int, headers: dict[str, str] | None = None) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.response = httpx.Response(status_code, headers=headers or {})


class TestIsTransient:
    @pytest.mark.parametrize(
        "exc",
        [
            TimeoutError(),
            ConnectionError(),
            _StatusError(429),
            _StatusError(503),
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            AgentError("overloaded", category="rate_limit", retriable=True),
        ],
    )
    def test_transient(self, exc: Exception) -> None:
        assert is_transient(exc) is True

    @pytest.mark.parametrize(
        "exc",
        [
            ValueError("bad"),
            _StatusError(400),
            _StatusError(401),
            AgentError("bad key", category="auth"),
        ],
    )
    def test_permanent(self, exc: Exception) -> None:
        assert is_transient(exc) is False


class TestRetryAfter:
    def test_numeric_header(self) -> None:
        assert retry_after(_StatusError(429, {"retry-after": "2.5"})) == 2.5

    def test_http_date_is_ignored(self) -> None:
        assert retry_after(_StatusError(429, {"retry-after": "Wed, 21 Oct 2026 07:28:00 GMT"})) is None

    def test_no_response(self) -> None:
        assert retry_after(TimeoutError()) is None


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        factory = AsyncMock(side_effect=[ConnectionError("reset"), _StatusError(429), "ok"])
        with patch("anvil.execution.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result, retries, errors = await retry_with_backoff(factory, max_retries=3)
        assert result == "ok"
        assert retries == 2
        assert errors == ["ConnectionError", "_StatusError"]
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_server_requested_wait_is_used_and_capped(self) -> None:
        factory = AsyncMock(
            side_effect=[
                _StatusError(429, {"retry-after": "4"}),
                _StatusError(503, {"retry-after": "120"}),
                "ok",
            ]
        )
        with patch("anvil.execution.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await retry_with_backoff(factory, max_retries=3, max_delay=30.0)
        assert [call.args[0] for call in sleep.await_args_list] == [4.0, 30.0]

    @pytest.mark.asyncio
    async def test_non_retriable_agent_error_raises_immediately(self) -> None:
        factory = AsyncMock(side_effect=AgentError("no choices", category="malformed"))
        with pytest.raises(AgentError):
            await retry_with_backoff(factory, max_retries=3)
        assert factory.await_count == 1

    @pytest.mark.asyncio
    async def test_permanent_error_raises_immediately(self) -> None:
        factory = AsyncMock(side_effect=_StatusError(401))
        with pytest.raises(_StatusError):
            await retry_with_backoff(factory, max_retries=3)
        assert factory.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_error(self) -> None:
        factory = AsyncMock(side_effect=TimeoutError("slow"))
        with patch("anvil.execution.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(TimeoutError):
                await retry_with_backoff(factory, max_retries=2)
        assert factory.await_count == 3
