"""Retry of backend turns on transient failures.

A failure is transient when anvil marked it ``retriable``, when it is a
network-level error (including httpx transport errors raised by the
provider SDKs), or when it carries a rate-limit or server status code.
Waits use exponential backoff with full jitter unless the server sent a
numeric ``Retry-After`` header.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from anvil.errors import AnvilError

logger = structlog.get_logger(__name__)

TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (
    TimeoutError,
    ConnectionError,
    httpx.TransportError,
)

TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504, 529})


def is_transient(exc: Exception) -> bool:
    """Check if an exception is worth another attempt."""
    if isinstance(exc, AnvilError):
        return exc.retriable
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True

    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if status is not None and status in TRANSIENT_STATUS_CODES:
        return True

    return "Connection" in type(exc).__name__


def retry_after(exc: Exception) -> float | None:
    """Seconds the server asked us to wait, if it said so in whole or decimal seconds."""
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


async def retry_with_backoff(
    coro_factory: Callable[[], Awaitable[Any]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> tuple[Any, int, list[str]]:
    """Await ``coro_factory()`` until it succeeds or fails permanently.

    Args:
        coro_factory: Callable that creates a new awaitable each call.
        max_retries: Maximum number of retry attempts (total calls = max_retries + 1).
        base_delay: Initial backoff delay in seconds.
        max_delay: Cap on any single wait, including a server's Retry-After.

    Returns:
        Tuple of (result, retries_used, list of transient error type names).

    Raises:
        The last exception when it is not transient or retries are exhausted.
    """
    retries_used = 0
    error_types: list[str] = []

    for attempt in range(max_retries + 1):
        try:
            result = await coro_factory()
            return (result, retries_used, error_types)
        except Exception as exc:
            if not is_transient(exc) or attempt == max_retries:
                raise

            retries_used += 1
            error_types.append(type(exc).__name__)
            requested = retry_after(exc)
            if requested is not None:
                delay = min(requested, max_delay)
            else:
                delay = random.uniform(0, min(base_delay * (2 ** attempt), max_delay))  # noqa: S311
            logger.info(
                "retry.backoff",
                attempt=attempt + 1,
                error=type(exc).__name__,
                delay_seconds=round(delay, 3),
                server_requested=requested is not None,
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry loop exited unexpectedly")  # pragma: no cover
