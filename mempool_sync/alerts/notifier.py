"""
Block notifications: turn store BlockNotices into log lines and a bounded
in-memory log feed.

This is a side-channel. The sync engine calls ``notify`` after the store has
already changed and swallows anything it raises, so presentation can never
affect pending-set state.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from mempool_sync.reconciliation.changes import BlockEventKind, BlockNotice
from mempool_sync.sync_logging import bind_block, get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ENTRIES = 100
DEFAULT_EXPLORER_BLOCK_URL = "https://mempool.space/block/{block_hash}"
# Display prefix lengths for block hashes in titles / descriptions
CONNECT_HASH_PREFIX = 10
DISCONNECT_HASH_PREFIX = 8

LEVEL_INFO = "INFO"
LEVEL_WARNING = "WARNING"
LEVEL_ERROR = "ERROR"


class Notifier(Protocol):
    def notify(self, notice: BlockNotice) -> None: ...


@dataclass(frozen=True)
class LogEntry:
    """One line of the recent-events feed."""

    event: str
    timestamp: str
    level: str
    message: str
    title: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "timestamp": self.timestamp,
            "level": self.level,
            "message": self.message,
            "title": self.title,
            "url": self.url,
        }


def _short_hash(block_hash: str, length: int) -> str:
    return block_hash[:length] + "..."


def describe(notice: BlockNotice) -> tuple[str, str]:
    """Return (title, description) for a block notice."""
    if notice.kind is BlockEventKind.CONNECTED:
        return (
            f"Block #{notice.height} Mined",
            f"{notice.tx_count} transactions confirmed in block "
            f"{_short_hash(notice.block_hash, CONNECT_HASH_PREFIX)}",
        )
    return (
        "Chain Reorganization",
        f"Block {_short_hash(notice.block_hash, DISCONNECT_HASH_PREFIX)} disconnected, "
        f"{notice.tx_count} txs back to mempool",
    )


class LogNotifier:
    """
    Default notifier: structured log line per block event plus the most
    recent ``max_entries`` entries, newest first.
    """

    def __init__(
        self,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        explorer_block_url: str = DEFAULT_EXPLORER_BLOCK_URL,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self._explorer_block_url = explorer_block_url
        self._lock = threading.Lock()

    def block_url(self, block_hash: str) -> str:
        return self._explorer_block_url.format(block_hash=block_hash)

    def notify(self, notice: BlockNotice) -> None:
        title, description = describe(notice)
        url = self.block_url(notice.block_hash)
        block_log = bind_block(notice.block_hash, notice.height)
        if notice.kind is BlockEventKind.CONNECTED:
            event, level = "BlockConnected", LEVEL_INFO
            block_log.info("block_connected", confirmed_count=notice.tx_count, url=url)
        else:
            event, level = "BlockDisconnected", LEVEL_WARNING
            block_log.warning("block_disconnected", returned_count=notice.tx_count, url=url)
        self.record(event, level, description, title=title, url=url)

    def record(
        self,
        event: str,
        level: str,
        message: str,
        *,
        title: str | None = None,
        url: str | None = None,
    ) -> LogEntry:
        """Add an entry to the feed (oldest entries fall off)."""
        entry = LogEntry(
            event=event,
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            message=message,
            title=title,
            url=url,
        )
        with self._lock:
            self._entries.appendleft(entry)
        return entry

    def entries(self) -> list[LogEntry]:
        """Recent entries, newest first."""
        with self._lock:
            return list(self._entries)
