"""
Pytest tests for the reconciliation store: dedupe, removal, block events,
pause buffering and merge-on-resume.
"""

from __future__ import annotations

import pytest

from mempool_sync.reconciliation import BlockEventKind, ReconciliationStore, SyncState
from mempool_sync.stream_listener.models import (
    BlockConnect,
    BlockDisconnect,
    MempoolAdd,
    MempoolRemove,
)
from mempool_sync.stream_listener.normalizer import normalize

BLOCK_HASH = "0000000000000000000" + "a" * 45


def _id(n: int) -> str:
    return f"{n:064x}"


def _tx(n: int, base: int = 1000, vsize: int = 250):
    return normalize({"txid": _id(n), "vsize": vsize, "fees": {"base": base}})


def _add(n: int, seq: int = 0, **kwargs) -> MempoolAdd:
    return MempoolAdd(sequence=seq, transaction=_tx(n, **kwargs))


def _ids(txs) -> list[str]:
    return [t.txid for t in txs]


@pytest.fixture
def store():
    return ReconciliationStore()


# --- Live events ---


def test_add_prepends_newest_first(store):
    """Adds go to the front: the pending set is most-recently-added first."""
    store.apply(_add(1))
    change = store.apply(_add(2))
    assert _ids(store.snapshot()) == [_id(2), _id(1)]
    assert change.target is SyncState.LIVE
    assert change.added == (_id(2),)
    assert change.visible is True
    assert store.version == 2


def test_add_same_txid_is_idempotent(store):
    """A repeated Add replaces the entry (latest payload wins) and never duplicates."""
    store.apply(_add(1, base=1000))
    store.apply(_add(2))
    change = store.apply(_add(1, base=5000))
    pending = store.snapshot()
    assert _ids(pending) == [_id(1), _id(2)]
    assert pending[0].fees.base == 5000
    assert change.updated == (_id(1),)
    assert change.added == ()


def test_remove_present_and_absent(store):
    store.apply(_add(1))
    store.apply(_add(2))
    version = store.version

    missing = store.apply(MempoolRemove(sequence=3, txid=_id(9)))
    assert missing.changed is False
    assert store.version == version

    change = store.apply(MempoolRemove(sequence=4, txid=_id(1)))
    assert change.removed == (_id(1),)
    assert _ids(store.snapshot()) == [_id(2)]
    assert store.version == version + 1


def test_block_connect_removes_listed_txids_atomically(store):
    """All confirmed txids leave in one step; unknown ones (coinbase) are ignored."""
    for n in (1, 2, 3):
        store.apply(_add(n))
    version = store.version
    coinbase = "c" * 64
    change = store.apply(
        BlockConnect(block_hash=BLOCK_HASH, height=840_001, txids=(coinbase, _id(1), _id(3)))
    )
    assert _ids(store.snapshot()) == [_id(2)]
    assert set(change.removed) == {_id(1), _id(3)}
    assert store.version == version + 1
    assert change.block.kind is BlockEventKind.CONNECTED
    assert change.block.height == 840_001
    # coinbase is excluded from the confirmed count
    assert change.block.tx_count == 2


def test_block_connect_without_matches_still_notifies(store):
    store.apply(_add(1))
    version = store.version
    change = store.apply(BlockConnect(block_hash=BLOCK_HASH, height=1, txids=("c" * 64,)))
    assert change.visible is False
    assert change.block is not None
    assert change.block.tx_count == 0
    assert store.version == version


def test_block_disconnect_appends_without_duplicates(store):
    """Returned transactions already pending are not copied; the rest are appended."""
    store.apply(_add(1))
    event = BlockDisconnect(
        block_hash=BLOCK_HASH,
        transactions=(_tx(1), _tx(2), _tx(2), _tx(3)),
    )
    change = store.apply(event)
    assert _ids(store.snapshot()) == [_id(1), _id(2), _id(3)]
    assert change.added == (_id(2), _id(3))
    assert change.block.kind is BlockEventKind.DISCONNECTED
    assert change.block.tx_count == 4
    assert change.block.height is None


def test_block_disconnect_requires_normalized_transactions(store):
    event = BlockDisconnect(block_hash=BLOCK_HASH, transactions=({"txid": _id(1)},))
    with pytest.raises(TypeError):
        store.apply(event)
    assert store.snapshot() == ()


def test_apply_rejects_unknown_event(store):
    with pytest.raises(TypeError):
        store.apply(object())


def test_snapshot_tuple_never_changes_under_reader(store):
    store.apply(_add(1))
    held = store.snapshot()
    store.apply(_add(2))
    store.apply(MempoolRemove(sequence=3, txid=_id(1)))
    assert _ids(held) == [_id(1)]


# --- Pause / resume ---


def test_pause_freezes_pending_set(store):
    """While paused every event goes to the buffer; the pending set and version are frozen."""
    store.apply(_add(1))
    store.apply(_add(2))
    frozen = store.snapshot()
    version = store.version

    pause = store.toggle_pause()
    assert pause.target is SyncState.PAUSED
    assert store.is_paused

    change = store.apply(_add(3))
    store.apply(MempoolRemove(sequence=4, txid=_id(1)))
    store.apply(BlockConnect(block_hash=BLOCK_HASH, height=2, txids=("c" * 64, _id(2))))

    assert change.target is SyncState.PAUSED
    assert change.visible is False
    assert store.snapshot() is frozen
    assert store.version == version
    assert _ids(store.buffered()) == [_id(3)]


def test_resume_merges_absent_entries(store):
    """Pending {A, B}; paused Add C and Remove B; resume yields {A, B, C}."""
    store.apply(_add(1))
    store.apply(_add(2))
    store.toggle_pause()
    store.apply(_add(3))
    store.apply(MempoolRemove(sequence=5, txid=_id(2)))

    change = store.toggle_pause()
    assert store.state is SyncState.LIVE
    assert set(_ids(store.snapshot())) == {_id(1), _id(2), _id(3)}
    # merged entries are appended after the existing ones
    assert _ids(store.snapshot())[-1] == _id(3)
    assert change.added == (_id(3),)
    assert change.visible is True
    assert store.buffered() == ()


def test_resume_union_keeps_entries_removed_while_paused(store):
    """Pending {A}; paused Add B, Add C, Remove A; resume yields {A, B, C}."""
    store.apply(_add(1))
    store.toggle_pause()
    store.apply(_add(2))
    store.apply(_add(3))
    store.apply(MempoolRemove(sequence=4, txid=_id(1)))
    store.toggle_pause()
    assert set(_ids(store.snapshot())) == {_id(1), _id(2), _id(3)}


def test_paused_remove_then_add_keeps_txid(store):
    store.apply(_add(1))
    store.toggle_pause()
    store.apply(MempoolRemove(sequence=2, txid=_id(1)))
    store.apply(_add(1))
    store.toggle_pause()
    assert _ids(store.snapshot()) == [_id(1)]


def test_paused_add_then_remove_drops_txid(store):
    store.toggle_pause()
    store.apply(_add(1))
    store.apply(MempoolRemove(sequence=2, txid=_id(1)))
    store.toggle_pause()
    assert store.snapshot() == ()


def test_block_connect_exact_set(store):
    """{A, B, C} + connect [A, B] leaves {C}, replaced in a single version step."""
    for n in (1, 2, 3):
        store.apply(_add(n))
    version = store.version
    store.apply(BlockConnect(block_hash=BLOCK_HASH, height=5, txids=(_id(1), _id(2))))
    assert _ids(store.snapshot()) == [_id(3)]
    assert store.version == version + 1


def test_resume_never_overwrites_pending_entries(store):
    store.apply(_add(1, base=1000))
    store.toggle_pause()
    store.apply(_add(1, base=9000))
    change = store.toggle_pause()
    pending = store.snapshot()
    assert len(pending) == 1
    assert pending[0].fees.base == 1000
    assert change.added == ()


def test_pause_resume_without_events_is_not_visible(store):
    store.apply(_add(1))
    version = store.version
    store.toggle_pause()
    change = store.toggle_pause()
    assert change.visible is False
    assert store.version == version


def test_buffer_applies_the_same_rules(store):
    """Inside the buffer, duplicates collapse and removes take effect."""
    store.toggle_pause()
    store.apply(_add(1))
    store.apply(_add(1))
    store.apply(_add(2))
    store.apply(MempoolRemove(sequence=9, txid=_id(2)))
    assert _ids(store.buffered()) == [_id(1)]


# --- Seed / reset ---


def test_seed_dedupes_and_bumps_version(store):
    first = _tx(1, base=111)
    assert store.seed([first, _tx(2), _tx(1, base=999)]) is True
    pending = store.snapshot()
    assert _ids(pending) == [_id(1), _id(2)]
    assert pending[0].fees.base == 111
    assert store.version == 1


def test_seed_after_live_event_is_skipped(store):
    """A late snapshot never clobbers state built from live events."""
    store.apply(_add(5))
    assert store.seed([_tx(1), _tx(2)]) is False
    assert _ids(store.snapshot()) == [_id(5)]


def test_reset_discards_everything(store):
    store.apply(_add(1))
    store.toggle_pause()
    store.apply(_add(2))
    version = store.version
    store.reset()
    assert store.snapshot() == ()
    assert store.buffered() == ()
    assert store.state is SyncState.LIVE
    assert store.events_applied == 0
    assert store.version > version
    # seeding is allowed again after a reset
    assert store.seed([_tx(3)]) is True
