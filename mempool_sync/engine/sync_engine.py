"""
Sync engine: snapshot → seed, then stream → decode → normalize → store.

Owns the subscription for its whole lifetime (async context manager: the
consumer task starts on enter and the stream is closed on every exit path),
exposes the pending set as an observable value (``current()``, ``version``,
``wait_for_update()``) and the pause toggle. Malformed messages are dropped
and reported as typed results; nothing in the message path raises.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Protocol

from mempool_sync.alerts.notifier import LogNotifier, Notifier
from mempool_sync.config.settings import Settings
from mempool_sync.core.exceptions import (
    DecodeError,
    MempoolSyncError,
    NormalizeError,
    SnapshotError,
)
from mempool_sync.reconciliation.changes import BlockNotice, ChangeSet, SyncState
from mempool_sync.reconciliation.store import ReconciliationStore
from mempool_sync.stream_listener.listener import WebSocketStreamSource
from mempool_sync.stream_listener.models import (
    MempoolAdd,
    MempoolRemove,
    StreamEvent,
    Transaction,
)
from mempool_sync.stream_listener.normalizer import normalize_batch, normalize_event
from mempool_sync.stream_listener.parser import decode
from mempool_sync.stream_listener.snapshot import HttpSnapshotSource
from mempool_sync.sync_logging import bind_txid, get_logger

logger = get_logger(__name__)


class SnapshotSource(Protocol):
    async def fetch(self) -> list[dict[str, Any]]: ...


class StreamSource(Protocol):
    """Live message source. A ``stop()`` method, if present, is called on engine stop."""

    def messages(self) -> AsyncIterator[str | bytes]: ...


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one stream message: the applied change or the typed error."""

    event: StreamEvent | None = None
    change: ChangeSet | None = None
    error: MempoolSyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class EngineStats:
    """Counters since the engine started."""

    messages_received: int = 0
    events_applied: int = 0
    decode_errors: int = 0
    normalize_errors: int = 0
    unexpected_errors: int = 0
    snapshot_loaded: bool = False
    snapshot_size: int = 0
    sequence_gaps: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages_received": self.messages_received,
            "events_applied": self.events_applied,
            "decode_errors": self.decode_errors,
            "normalize_errors": self.normalize_errors,
            "unexpected_errors": self.unexpected_errors,
            "snapshot_loaded": self.snapshot_loaded,
            "snapshot_size": self.snapshot_size,
            "sequence_gaps": self.sequence_gaps,
        }


class SequenceMonitor:
    """
    Watches the A/R sequence numbers for gaps and regressions.

    Observation only: gaps are counted and logged, events are never
    reordered, held back or dropped because of them.
    """

    def __init__(self) -> None:
        self._last: int | None = None
        self.gaps = 0

    def observe(self, sequence: int) -> bool:
        """Record a sequence number; return True if it is not last + 1."""
        last, self._last = self._last, sequence
        if last is None or sequence == last + 1:
            return False
        self.gaps += 1
        logger.warning(
            "stream_sequence_gap",
            expected=last + 1,
            received=sequence,
            regression=sequence <= last,
        )
        return True

    def reset(self) -> None:
        self._last = None


class SyncEngine:
    """
    Orchestrates the snapshot, the live stream and the reconciliation store.

    Usage:
        async with SyncEngine(stream, snapshot) as engine:
            txs = engine.current()
            engine.toggle()
    """

    def __init__(
        self,
        stream: StreamSource,
        snapshot: SnapshotSource | None = None,
        *,
        store: ReconciliationStore | None = None,
        notifier: Notifier | None = None,
        fees_in_btc: bool = False,
    ) -> None:
        self._stream = stream
        self._snapshot = snapshot
        self._store = store or ReconciliationStore()
        self._notifier = notifier
        self._fees_in_btc = fees_in_btc
        self._sequences = SequenceMonitor()
        self._stats = EngineStats()
        self._task: asyncio.Task[None] | None = None
        self._updated = asyncio.Event()

    # -- read side -----------------------------------------------------------

    @property
    def store(self) -> ReconciliationStore:
        return self._store

    @property
    def notifier(self) -> Notifier | None:
        return self._notifier

    @property
    def state(self) -> SyncState:
        return self._store.state

    @property
    def version(self) -> int:
        return self._store.version

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current(self) -> tuple[Transaction, ...]:
        """Latest pending set (frozen while paused)."""
        return self._store.snapshot()

    def stats(self) -> EngineStats:
        self._stats.sequence_gaps = self._sequences.gaps
        return self._stats

    async def wait_for_update(
        self,
        after_version: int,
        timeout: float | None = None,
    ) -> tuple[int, tuple[Transaction, ...]]:
        """
        Suspend until the pending set version is greater than ``after_version``
        and return (version, pending set). Raises asyncio.TimeoutError on timeout.
        """
        async def _wait() -> None:
            while self._store.version <= after_version:
                event = self._updated
                await event.wait()

        await asyncio.wait_for(_wait(), timeout=timeout)
        return self._store.version, self._store.snapshot()

    def _publish(self) -> None:
        # Wake every waiter, then arm a fresh event for the next version
        event, self._updated = self._updated, asyncio.Event()
        event.set()

    # -- write side ----------------------------------------------------------

    def toggle(self) -> SyncState:
        """Pause or resume; resuming merges the buffer. Returns the new state."""
        change = self._store.toggle_pause()
        if change.visible:
            self._publish()
        state = self._store.state
        logger.info("engine_toggled", state=state.value, merged_count=len(change.added))
        return state

    def process_message(self, message: str | bytes) -> ProcessResult:
        """Decode, normalize and apply one raw stream message."""
        self._stats.messages_received += 1
        try:
            event = normalize_event(decode(message), fees_in_btc=self._fees_in_btc)
        except DecodeError as e:
            self._stats.decode_errors += 1
            logger.warning("stream_message_dropped", reason=e.code, error=str(e))
            return ProcessResult(error=e)
        except NormalizeError as e:
            self._stats.normalize_errors += 1
            bind_txid(e.txid).warning("stream_event_dropped", reason=e.code, error=str(e))
            return ProcessResult(error=e)
        return ProcessResult(event=event, change=self.apply_event(event))

    def apply_event(self, event: StreamEvent) -> ChangeSet:
        """Apply one already-normalized event to the store and fan out the result."""
        if isinstance(event, (MempoolAdd, MempoolRemove)):
            self._sequences.observe(event.sequence)
        change = self._store.apply(event)
        self._stats.events_applied += 1
        if change.visible:
            self._publish()
        if change.block is not None:
            self._notify(change.block)
        return change

    def _notify(self, notice: BlockNotice) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(notice)
        except Exception as e:
            logger.exception(
                "notifier_failed",
                block_hash=notice.block_hash,
                error=str(e),
            )

    # -- lifecycle -----------------------------------------------------------

    async def load_snapshot(self) -> bool:
        """
        Fetch the snapshot and seed the store. Any failure leaves the pending
        set empty; returns True only if the store was seeded.
        """
        if self._snapshot is None:
            return False
        try:
            records = await self._snapshot.fetch()
        except SnapshotError as e:
            logger.warning("snapshot_unavailable", error=str(e))
            return False
        except Exception as e:
            logger.exception("snapshot_unavailable", error=str(e))
            return False
        transactions, errors = normalize_batch(records, fees_in_btc=self._fees_in_btc)
        for err in errors:
            bind_txid(err.txid).warning("snapshot_entry_skipped", error=str(err))
        seeded = self._store.seed(transactions)
        if seeded:
            self._stats.snapshot_loaded = True
            self._stats.snapshot_size = len(transactions)
            self._publish()
        return seeded

    async def start(self) -> None:
        """Seed from the snapshot, then start consuming the stream."""
        if self._task is not None:
            raise RuntimeError("SyncEngine already started")
        await self.load_snapshot()
        self._task = asyncio.create_task(self._consume(), name="mempool-stream-consumer")
        logger.info("engine_started", pending_count=len(self._store.snapshot()))

    async def stop(self) -> None:
        """Cancel the consumer (closing the stream) and discard all state."""
        task, self._task = self._task, None
        stop_stream = getattr(self._stream, "stop", None)
        if callable(stop_stream):
            stop_stream()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._store.reset()
        self._sequences.reset()
        self._publish()
        logger.info("engine_stopped", messages_received=self._stats.messages_received)

    async def join(self) -> None:
        """Wait until the stream ends on its own (or the engine is stopped)."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)

    async def __aenter__(self) -> "SyncEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def _consume(self) -> None:
        messages = self._stream.messages()
        try:
            async with aclosing(messages):
                async for raw in messages:
                    try:
                        self.process_message(raw)
                    except Exception as e:
                        # One bad message must not end the subscription
                        self._stats.unexpected_errors += 1
                        logger.exception("stream_message_failed", error=str(e))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("stream_consumer_failed", error=str(e))
        finally:
            logger.info("stream_consumer_exited")


def build_engine(settings: Settings) -> SyncEngine:
    """Engine wired to the default HTTP snapshot, WebSocket stream and log notifier."""
    stream = WebSocketStreamSource(
        settings.stream_url,
        reconnect_min_sec=settings.reconnect_min_sec,
        reconnect_max_sec=settings.reconnect_max_sec,
        ping_interval=settings.ws_ping_interval,
        ping_timeout=settings.ws_ping_timeout,
    )
    snapshot = HttpSnapshotSource(
        settings.snapshot_url,
        timeout_sec=settings.snapshot_timeout_sec,
    )
    notifier = LogNotifier(
        max_entries=settings.log_buffer_size,
        explorer_block_url=settings.explorer_block_url,
    )
    return SyncEngine(stream, snapshot, notifier=notifier, fees_in_btc=settings.fees_in_btc)
