"""
Reconciliation store: the canonical pending set, the pause buffer, and all
merge / dedupe / removal rules.

Two states. LIVE: events apply to the pending set. PAUSED: the same rules
apply to the buffer and the pending set stays frozen (still readable). On
resume, buffered entries whose txid is not already pending are appended and
the buffer is cleared.

Both collections are immutable tuples ordered most-recently-added first and
are replaced wholesale on every mutation, so readers can grab ``snapshot()``
without locking and never observe a half-applied event. Writers (seed,
apply, toggle_pause, reset) are serialized behind one lock.
"""

from __future__ import annotations

import threading
from typing import Iterable

from mempool_sync.reconciliation.changes import BlockNotice, ChangeSet, SyncState
from mempool_sync.stream_listener.models import (
    BlockConnect,
    BlockDisconnect,
    MempoolAdd,
    MempoolRemove,
    StreamEvent,
    Transaction,
)
from mempool_sync.sync_logging import get_logger

logger = get_logger(__name__)

TxSet = tuple[Transaction, ...]


def _require_transaction(tx: object) -> Transaction:
    if not isinstance(tx, Transaction):
        raise TypeError(
            f"Store accepts normalized Transactions only, got {type(tx).__name__}"
        )
    return tx


def _upsert(current: TxSet, tx: Transaction) -> tuple[TxSet, ChangeSet]:
    """Replace any entry with the same txid and put the new one first."""
    rest = tuple(t for t in current if t.txid != tx.txid)
    existed = len(rest) != len(current)
    fields = {"updated": (tx.txid,)} if existed else {"added": (tx.txid,)}
    return (tx,) + rest, ChangeSet(target=SyncState.LIVE, **fields)


def _remove(current: TxSet, txid: str) -> tuple[TxSet, ChangeSet]:
    kept = tuple(t for t in current if t.txid != txid)
    if len(kept) == len(current):
        return current, ChangeSet(target=SyncState.LIVE)
    return kept, ChangeSet(target=SyncState.LIVE, removed=(txid,))


def _connect(current: TxSet, event: BlockConnect) -> tuple[TxSet, ChangeSet]:
    """Drop every listed txid in a single pass; unknown txids are ignored."""
    confirmed = frozenset(event.txids)
    kept: list[Transaction] = []
    removed: list[str] = []
    for t in current:
        if t.txid in confirmed:
            removed.append(t.txid)
        else:
            kept.append(t)
    notice = BlockNotice.connected(event.block_hash, event.height, event.txids)
    new = tuple(kept) if removed else current
    return new, ChangeSet(target=SyncState.LIVE, removed=tuple(removed), block=notice)


def _disconnect(current: TxSet, event: BlockDisconnect) -> tuple[TxSet, ChangeSet]:
    """Append returned transactions that are not already held (never a second copy)."""
    present = {t.txid for t in current}
    returned: list[Transaction] = []
    for raw in event.transactions:
        tx = _require_transaction(raw)
        if tx.txid in present:
            continue
        present.add(tx.txid)
        returned.append(tx)
    notice = BlockNotice.disconnected(event.block_hash, len(event.transactions))
    added = tuple(t.txid for t in returned)
    new = current + tuple(returned) if returned else current
    return new, ChangeSet(target=SyncState.LIVE, added=added, block=notice)


def _dedupe(transactions: Iterable[Transaction]) -> TxSet:
    seen: set[str] = set()
    out: list[Transaction] = []
    for tx in transactions:
        tx = _require_transaction(tx)
        if tx.txid in seen:
            continue
        seen.add(tx.txid)
        out.append(tx)
    return tuple(out)


class ReconciliationStore:
    """
    Single-writer store for the pending-transaction view.

    ``version`` increments whenever the pending set visibly changes; buffer
    activity while paused does not move it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = SyncState.LIVE
        self._pending: TxSet = ()
        self._buffered: TxSet = ()
        self._version = 0
        self._events_applied = 0

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_paused(self) -> bool:
        return self._state is SyncState.PAUSED

    @property
    def version(self) -> int:
        return self._version

    @property
    def events_applied(self) -> int:
        return self._events_applied

    def snapshot(self) -> TxSet:
        """Current pending set; while paused this is the set frozen at pause time."""
        return self._pending

    def buffered(self) -> TxSet:
        """Entries collected while paused and not yet merged."""
        return self._buffered

    def seed(self, transactions: Iterable[Transaction]) -> bool:
        """
        Replace the pending set with an initial snapshot.

        No-op (returns False) once any live event has been applied, so a slow
        snapshot cannot clobber newer live state. Seeding before subscribing
        avoids the race; duplicate Adds are idempotent anyway.
        """
        seeded = _dedupe(transactions)
        with self._lock:
            if self._events_applied:
                logger.info(
                    "store_seed_skipped",
                    reason="live_events_already_applied",
                    events_applied=self._events_applied,
                )
                return False
            self._pending = seeded
            self._version += 1
        logger.info("store_seeded", tx_count=len(seeded))
        return True

    def apply(self, event: StreamEvent) -> ChangeSet:
        """
        Apply one normalized stream event to the pending set (LIVE) or the
        buffer (PAUSED) and return what changed.
        """
        with self._lock:
            target = self._state
            current = self._buffered if target is SyncState.PAUSED else self._pending
            if isinstance(event, MempoolAdd):
                new, change = _upsert(current, _require_transaction(event.transaction))
            elif isinstance(event, MempoolRemove):
                new, change = _remove(current, event.txid)
            elif isinstance(event, BlockConnect):
                new, change = _connect(current, event)
            elif isinstance(event, BlockDisconnect):
                new, change = _disconnect(current, event)
            else:
                raise TypeError(f"Unsupported stream event: {type(event).__name__}")
            self._events_applied += 1
            if target is SyncState.PAUSED:
                self._buffered = new
                return ChangeSet(
                    target=SyncState.PAUSED,
                    added=change.added,
                    updated=change.updated,
                    removed=change.removed,
                    block=change.block,
                )
            if new is not current:
                self._pending = new
                self._version += 1
            return change

    def toggle_pause(self) -> ChangeSet:
        """
        Flip LIVE <-> PAUSED.

        Resuming merges the buffer: entries whose txid is not already pending
        are appended, existing pending entries are never overwritten, then the
        buffer is cleared. The returned ChangeSet lists the merged txids.
        """
        with self._lock:
            if self._state is SyncState.LIVE:
                self._state = SyncState.PAUSED
                logger.info("store_paused", pending_count=len(self._pending))
                return ChangeSet(target=SyncState.PAUSED)

            present = {t.txid for t in self._pending}
            merged = tuple(t for t in self._buffered if t.txid not in present)
            buffered_count = len(self._buffered)
            self._buffered = ()
            self._state = SyncState.LIVE
            if merged:
                self._pending = self._pending + merged
                self._version += 1
        logger.info(
            "store_resumed",
            buffered_count=buffered_count,
            merged_count=len(merged),
        )
        return ChangeSet(target=SyncState.LIVE, added=tuple(t.txid for t in merged))

    def reset(self) -> None:
        """Discard all state; back to an empty, live, never-seeded store."""
        with self._lock:
            self._state = SyncState.LIVE
            self._pending = ()
            self._buffered = ()
            self._events_applied = 0
            self._version += 1
