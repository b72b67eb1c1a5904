"""
Mempool snapshot fetcher: one-shot REST read of the current pending set.

Returns the raw entries in server order. Every failure (transport, HTTP
status, body shape) is reported as SnapshotError; there is no retry here.
"""

from __future__ import annotations

from typing import Any

import httpx

from mempool_sync.core.exceptions import SnapshotError
from mempool_sync.sync_logging import get_logger

logger = get_logger(__name__)

DEFAULT_SNAPSHOT_TIMEOUT_SEC = 10.0


def _extract_entries(data: Any) -> list[dict[str, Any]]:
    """Accept a bare JSON list or a {"success": ..., "data": [...]} envelope."""
    if isinstance(data, dict):
        if data.get("success") is False:
            raise SnapshotError(f"Snapshot endpoint reported failure: {data.get('message')}")
        data = data.get("data")
    if not isinstance(data, list):
        raise SnapshotError(f"Snapshot body must be a list, got {type(data).__name__}")
    return [item for item in data if isinstance(item, dict)]


class HttpSnapshotSource:
    """GET the mempool snapshot from the proxy REST API."""

    def __init__(
        self,
        url: str,
        *,
        timeout_sec: float = DEFAULT_SNAPSHOT_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            url: Snapshot endpoint (e.g. http://localhost:3001/api/mempool).
            timeout_sec: Total HTTP timeout; the only timeout in the sync path.
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        if not url.strip():
            raise ValueError("url must be non-empty")
        self._url = url.strip()
        self._timeout = timeout_sec
        self._transport = transport

    @property
    def url(self) -> str:
        return self._url

    async def fetch(self) -> list[dict[str, Any]]:
        """Fetch and return raw mempool entries; raise SnapshotError on any failure."""
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            ) as client:
                resp = await client.get(self._url)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise SnapshotError(
                f"Snapshot request failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise SnapshotError(f"Snapshot request failed: {e}") from e
        except ValueError as e:
            raise SnapshotError(f"Snapshot body is not valid JSON: {e}") from e
        entries = _extract_entries(data)
        logger.info("snapshot_fetched", url=self._url, entry_count=len(entries))
        return entries
