"""Result sink: the client side of the hosted results API.

The sink is an interface: ``submit(record)`` either returns a receipt
carrying the remote id, or raises PersistenceError. There is no
fire-and-forget mode; the caller always learns whether the record
landed.
"""

from __future__ import annotations

import os
from typing import Protocol

import httpx
import structlog
from pydantic import BaseModel

from anvil.errors import PersistenceError
from anvil.models.config import SinkConfig
from anvil.models.result import RunRecord

logger = structlog.get_logger(__name__)


class SinkReceipt(BaseModel):
    """Acknowledgement of a stored record."""

    remote_id: str


class ResultSink(Protocol):
    async def submit(self, record: RunRecord) -> SinkReceipt:
        """Persist a record remotely.

        Raises:
            PersistenceError: If the sink is unreachable or rejects the record.
        """
        ...


class NullSink:
    """Offline sink: acknowledges every record with its local run id."""

    async def submit(self, record: RunRecord) -> SinkReceipt:
        return SinkReceipt(remote_id=record.run_id)


class HttpResultSink:
    """POSTs records to ``<base_url>/runs`` and expects ``{"id": ...}`` back."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def submit(self, record: RunRecord) -> SinkReceipt:
        url = f"{self.base_url}/runs"
        body = record.model_dump_json()

        try:
            if self._client is not None:
                response = await self._client.post(url, content=body, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, content=body, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("sink.unreachable", url=url, error=str(exc))
            raise PersistenceError(f"Result sink unreachable at {url}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.warning("sink.rejected", url=url, status_code=response.status_code)
            raise PersistenceError(
                f"Result sink rejected run {record.run_id}: "
                f"HTTP {response.status_code} {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise PersistenceError(
                f"Result sink returned a non-JSON body for run {record.run_id}",
                status_code=response.status_code,
            ) from exc

        remote_id = payload.get("id") if isinstance(payload, dict) else None
        if remote_id is None or remote_id == "":
            raise PersistenceError(
                f"Result sink response for run {record.run_id} has no 'id'",
                status_code=response.status_code,
            )

        logger.info("sink.accepted", run_id=record.run_id, remote_id=str(remote_id))
        return SinkReceipt(remote_id=str(remote_id))


def build_sink(config: SinkConfig) -> ResultSink:
    """HttpResultSink when a url is configured, otherwise NullSink."""
    if not config.url:
        return NullSink()
    return HttpResultSink(
        config.url,
        token=os.environ.get(config.token_env),
        timeout=config.timeout_seconds,
    )
