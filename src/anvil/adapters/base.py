"""Agent adapter contracts and unified message/result dataclasses.

Two layers live here:

- BaseAgentAdapter is the capability every backend variant implements:
  ``run(prompt, workspace, config) -> AgentResult``. It owns timeout
  handling and turns backend exceptions into a structured AgentFailure,
  so nothing raised by a backend crosses into the pipeline.
- ChatBackend is the single-turn chat-completion contract used by the
  hosted variants (and by the LLM judge). ChatAgentAdapter combines the
  two by driving a ChatBackend through the multi-turn tool loop.

The dataclasses are plain dataclasses (not Pydantic) to avoid overhead
in the hot path of adapter calls.
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from anvil.errors import AgentError
from anvil.execution.redaction import redact_content, truncate_content
from anvil.models.result import AgentFailure, AgentSummary
from anvil.models.run import UNAVAILABLE, Telemetry

logger = structlog.get_logger(__name__)

MAX_TRANSCRIPT_SUMMARY_CHARS = 4_000


@dataclass
class ToolCallResult:
    """Result of a tool call extracted from the model response."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class TokenUsage:
    """Token usage counts from a single adapter turn."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class AdapterTurnResult:
    """Result of a single send_turn() call to a chat backend."""

    content: str | None
    tool_calls: list[ToolCallResult]
    usage: TokenUsage
    raw_response: dict[str, Any]
    finish_reason: str


@dataclass
class Message:
    """A single message in the conversation history.

    Roles: system, user, assistant, tool_result.
    """

    role: str
    content: str | None = None
    tool_calls: list[ToolCallResult] | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None


@dataclass
class TurnConfig:
    """Generation parameters for one send_turn() call."""

    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    seed: int | None = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentConfig:
    """Recognized options for one agent run.

    The option set is closed: model, turn and tool-call budgets, the
    wall-clock timeout, generation parameters, retry count, and
    backend-specific extras (validated by execution/extras.py).
    """

    model: str
    max_turns: int = 30
    tool_call_budget: int | None = None
    timeout_seconds: float = 1800.0
    temperature: float | None = None
    max_tokens: int | None = None
    max_retries: int = 3
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentProgress:
    """Mutable accumulator an adapter fills in while it works.

    Kept outside the adapter's return value so that partial usage
    survives a failure or timeout. None means the backend never
    reported that figure; it becomes UNAVAILABLE in the telemetry.
    """

    tokens_in: int | None = None
    tokens_out: int | None = None
    cost_usd: float | None = None
    turns: int | None = None
    tool_call_count: int | None = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    final_content: str | None = None
    notes: list[str] = field(default_factory=list)

    def add_usage(self, input_tokens: int, output_tokens: int) -> None:
        self.tokens_in = (self.tokens_in or 0) + input_tokens
        self.tokens_out = (self.tokens_out or 0) + output_tokens

    def record_tool_call(self, call: dict[str, Any]) -> None:
        self.tool_calls.append(call)
        self.tool_call_count = len(self.tool_calls)


@dataclass
class AgentResult:
    """Normalized outcome of one agent run, identical in shape for every backend."""

    success: bool
    transcript_summary: str
    telemetry: Telemetry
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    failure: AgentFailure | None = None

    def to_summary(self, adapter: str) -> AgentSummary:
        return AgentSummary(
            adapter=adapter,
            success=self.success,
            transcript_summary=self.transcript_summary,
            tool_calls=self.tool_calls,
            failure=self.failure,
        )


def _or_unavailable(value: int | float | None) -> int | float:
    return UNAVAILABLE if value is None else value


def classify_failure(exc: BaseException) -> AgentFailure:
    """Map a backend exception to a structured failure category.

    Categories: auth, rate_limit, network, timeout, malformed, process,
    unknown. SDK exceptions are recognized by their status code
    attribute and class name so no SDK import is needed here.
    """
    if isinstance(exc, AgentError):
        return AgentFailure(category=exc.category, message=exc.message)

    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    name = type(exc).__name__
    if status in (401, 403) or "Authentication" in name or "PermissionDenied" in name:
        category = "auth"
    elif status == 429 or "RateLimit" in name:
        category = "rate_limit"
    elif isinstance(exc, TimeoutError) or "Timeout" in name:
        category = "timeout"
    elif isinstance(exc, ConnectionError) or "Connection" in name:
        category = "network"
    elif isinstance(exc, (json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError, IndexError)):
        category = "malformed"
    else:
        category = "unknown"
    return AgentFailure(category=category, message=f"{name}: {exc}")


class BaseAgentAdapter(ABC):
    """Abstract base class for every agent backend variant.

    Subclasses implement _execute(), filling an AgentProgress as they
    go. run() is the public contract: it bounds _execute() by the
    configured timeout and always returns an AgentResult.
    """

    name: str = "base"

    @abstractmethod
    async def _execute(
        self,
        prompt: str,
        workspace: Path,
        config: AgentConfig,
        progress: AgentProgress,
    ) -> None:
        """Drive the backend against the workspace.

        Raise on failure; whatever was written to *progress* before the
        exception is kept in the result telemetry.
        """

    async def run(
        self,
        prompt: str,
        workspace: Path,
        config: AgentConfig,
    ) -> AgentResult:
        """Run the agent and return a normalized result.

        Backend errors and timeouts are captured as AgentFailure.
        Cancellation from the caller is not captured and propagates.
        """
        progress = AgentProgress()
        failure: AgentFailure | None = None
        start = time.perf_counter()

        logger.info("agent.started", adapter=self.name, model=config.model)
        try:
            async with asyncio.timeout(config.timeout_seconds):
                await self._execute(prompt, Path(workspace), config, progress)
        except TimeoutError:
            failure = AgentFailure(
                category="timeout",
                message=f"Agent did not finish within {config.timeout_seconds:g}s",
            )
        except Exception as exc:
            failure = classify_failure(exc)

        elapsed = time.perf_counter() - start

        telemetry = Telemetry(
            tokens_in=_or_unavailable(progress.tokens_in),
            tokens_out=_or_unavailable(progress.tokens_out),
            cost_usd=_or_unavailable(progress.cost_usd),
            tool_calls=_or_unavailable(progress.tool_call_count),
            turns=_or_unavailable(progress.turns),
            duration_seconds=elapsed,
        )

        if failure is not None:
            logger.warning(
                "agent.failed",
                adapter=self.name,
                category=failure.category,
                reason=failure.message,
            )
        else:
            logger.info(
                "agent.completed",
                adapter=self.name,
                duration_seconds=round(elapsed, 3),
                tool_calls=telemetry.tool_calls,
            )

        return AgentResult(
            success=failure is None,
            transcript_summary=self._summarize(progress),
            telemetry=telemetry,
            tool_calls=list(progress.tool_calls),
            failure=failure,
        )

    def _summarize(self, progress: AgentProgress) -> str:
        parts = list(progress.notes)
        if progress.final_content:
            parts.append(progress.final_content)
        summary = "\n".join(parts)
        return truncate_content(redact_content(summary), MAX_TRANSCRIPT_SUMMARY_CHARS)


class ChatBackend(ABC):
    """Abstract base class for single-turn chat-completion providers."""

    @abstractmethod
    async def send_turn(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        config: TurnConfig | None = None,
    ) -> AdapterTurnResult:
        """Send a single turn to the model and return the result.

        Args:
            messages: Conversation history as a list of Message objects.
            tools: Optional list of tool definitions (name, description, parameters).
            config: Optional generation parameters for this turn.

        Returns:
            AdapterTurnResult with the model's response.
        """
        ...

    def provider_name(self) -> str:
        """Return the provider name for this backend.

        Default implementation returns the class name.
        """
        return type(self).__name__


class ChatAgentAdapter(ChatBackend, BaseAgentAdapter):
    """Agent adapter for hosted chat APIs: a ChatBackend driven by the tool loop."""

    async def _execute(
        self,
        prompt: str,
        workspace: Path,
        config: AgentConfig,
        progress: AgentProgress,
    ) -> None:
        from anvil.adapters.chat_loop import ChatAgentLoop

        loop = ChatAgentLoop(self)
        await loop.run(prompt, workspace, config, progress)
