"""
Mempool sequence-stream listener: WebSocket subscription and message emission.

Responsibilities:
- Connect to the proxy's sequence WebSocket and yield raw text messages.
- Reconnect with exponential backoff; the consumer sees one continuous
  iterator and cannot tell a first connection from a resumed one.
- Release the socket on every exit path (consumer aclose(), cancellation,
  stop()).
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

import websockets
from websockets.exceptions import ConnectionClosed

from mempool_sync.sync_logging import get_logger

logger = get_logger(__name__)

DEFAULT_WS_PING_INTERVAL = 30.0
DEFAULT_WS_PING_TIMEOUT = 10.0
DEFAULT_RECONNECT_MIN_SEC = 1.0
DEFAULT_RECONNECT_MAX_SEC = 60.0
_WS_CLOSE_TIMEOUT = 5.0


class WebSocketStreamSource:
    """
    Reconnecting WebSocket source for the mempool sequence stream.

    ``messages()`` is an async generator; iterate it inside
    ``contextlib.aclosing`` (the sync engine does) so the connection closes
    as soon as the consumer stops.
    """

    def __init__(
        self,
        url: str,
        *,
        reconnect_min_sec: float = DEFAULT_RECONNECT_MIN_SEC,
        reconnect_max_sec: float = DEFAULT_RECONNECT_MAX_SEC,
        ping_interval: float | None = DEFAULT_WS_PING_INTERVAL,
        ping_timeout: float | None = DEFAULT_WS_PING_TIMEOUT,
    ) -> None:
        if not url.strip():
            raise ValueError("url must be non-empty")
        if reconnect_min_sec <= 0:
            raise ValueError("reconnect_min_sec must be positive")
        self._url = url.strip()
        self._reconnect_min = reconnect_min_sec
        self._reconnect_max = max(reconnect_max_sec, reconnect_min_sec)
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._stop = asyncio.Event()

    @property
    def url(self) -> str:
        return self._url

    def stop(self) -> None:
        """
        Signal the generator to finish after the current message or backoff.
        SyncEngine.stop() calls this before cancelling its consumer.
        """
        self._stop.set()

    async def messages(self) -> AsyncIterator[str | bytes]:
        """Yield raw messages forever, reconnecting on failure, until stop()."""
        # A fresh iteration after stop() (engine restart) subscribes again
        self._stop.clear()
        backoff = self._reconnect_min
        run_id = 0
        while not self._stop.is_set():
            run_id += 1
            try:
                logger.info("stream_connecting", run_id=run_id, url=self._url)
                async with websockets.connect(
                    self._url,
                    ping_interval=self._ping_interval,
                    ping_timeout=self._ping_timeout,
                    close_timeout=_WS_CLOSE_TIMEOUT,
                ) as ws:
                    backoff = self._reconnect_min
                    logger.info("stream_connected", run_id=run_id)
                    async for raw in ws:
                        if self._stop.is_set():
                            return
                        yield raw
                    logger.warning("stream_closed_by_server", run_id=run_id)
            except ConnectionClosed as e:
                logger.warning(
                    "stream_disconnected",
                    run_id=run_id,
                    code=e.rcvd.code if e.rcvd is not None else None,
                    reason=e.rcvd.reason if e.rcvd is not None else None,
                )
            except (OSError, asyncio.TimeoutError) as e:
                logger.warning("stream_connect_failed", run_id=run_id, error=str(e))
            except Exception as e:
                logger.exception("stream_error", run_id=run_id, error=str(e))

            if self._stop.is_set():
                break
            logger.info("stream_reconnect", run_id=run_id, backoff_sec=round(backoff, 1))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=backoff)
            except asyncio.TimeoutError:
                pass
            backoff = min(backoff * 2, self._reconnect_max)
        logger.info("stream_stopped", run_id=run_id)
