"""
Pytest tests for the sync engine: snapshot seeding, stream consumption,
dropped messages, notifier isolation, pause toggle and lifecycle.

Async paths are driven with asyncio.run against in-memory stream and
snapshot fakes (see conftest).
"""

from __future__ import annotations

import asyncio
import json

import pytest

from mempool_sync.alerts import LogNotifier
from mempool_sync.core.exceptions import DecodeError, NormalizeError, SnapshotError
from mempool_sync.engine import SequenceMonitor, SyncEngine, build_engine
from mempool_sync.config.settings import Settings
from mempool_sync.reconciliation import ReconciliationStore, SyncState
from mempool_sync.stream_listener.listener import WebSocketStreamSource
from mempool_sync.stream_listener.snapshot import HttpSnapshotSource

BLOCK_HASH = "00000000000000000002" + "b" * 44
COINBASE = "c" * 64
WAIT = 2.0


def _add(raw: dict, seq: int) -> str:
    return json.dumps({"event": "A", "sequence": seq, "transaction": raw})


def _remove(txid: str, seq: int) -> str:
    return json.dumps({"event": "R", "sequence": seq, "txid": txid})


def _connect(height: int, *txids: str) -> str:
    return json.dumps(
        {"event": "C", "block": {"block_hash": BLOCK_HASH, "height": height, "txids": list(txids)}}
    )


def _disconnect(*raws: dict) -> str:
    return json.dumps({"event": "D", "block_hash": BLOCK_HASH, "transactions": list(raws)})


class ExplodingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    def notify(self, notice) -> None:
        self.calls += 1
        raise RuntimeError("toast failed")


def _ids(txs) -> list[str]:
    return [t.txid for t in txs]


# --- Lifecycle with snapshot + stream ---


def test_engine_seeds_then_applies_stream(raw_tx, txid, fake_stream, fake_snapshot):
    """Snapshot seeds the set; Add / Remove / Connect from the stream are applied in order."""
    stream = fake_stream([
        _add(raw_tx(3), 1),
        _remove(txid(1), 2),
        _connect(840_001, COINBASE, txid(2)),
    ])
    snapshot = fake_snapshot([raw_tx(1), raw_tx(2)])
    notifier = LogNotifier()

    async def run():
        async with SyncEngine(stream, snapshot, notifier=notifier) as engine:
            assert engine.running
            await asyncio.wait_for(stream.drained.wait(), WAIT)
            return _ids(engine.current()), engine.stats().to_dict()

    pending, stats = asyncio.run(run())
    assert pending == [txid(3)]
    assert stats["snapshot_loaded"] is True
    assert stats["snapshot_size"] == 2
    assert stats["events_applied"] == 3
    assert snapshot.calls == 1
    entries = notifier.entries()
    assert len(entries) == 1
    assert entries[0].title == "Block #840001 Mined"
    assert entries[0].message.startswith("1 transactions confirmed in block ")


def test_engine_stop_closes_stream_and_resets(raw_tx, fake_stream, fake_snapshot):
    """Leaving the context cancels the consumer, releases the stream and discards state."""
    stream = fake_stream([_add(raw_tx(1), 1)])

    async def run():
        engine = SyncEngine(stream, fake_snapshot([raw_tx(2)]))
        async with engine:
            await asyncio.wait_for(stream.drained.wait(), WAIT)
            assert len(engine.current()) == 2
        return engine

    engine = asyncio.run(run())
    assert stream.opened
    assert stream.closed
    assert engine.running is False
    assert engine.current() == ()
    assert engine.state is SyncState.LIVE


def test_engine_start_twice_raises(fake_stream):
    async def run():
        engine = SyncEngine(fake_stream())
        await engine.start()
        try:
            with pytest.raises(RuntimeError, match="already started"):
                await engine.start()
        finally:
            await engine.stop()

    asyncio.run(run())


def test_engine_join_returns_when_stream_ends(raw_tx, fake_stream):
    stream = fake_stream([_add(raw_tx(1), 1)], hold_open=False)

    async def run():
        async with SyncEngine(stream) as engine:
            await asyncio.wait_for(engine.join(), WAIT)
            return engine.running, _ids(engine.current())

    running, pending = asyncio.run(run())
    assert running is False
    assert len(pending) == 1
    assert stream.closed


@pytest.mark.parametrize("error", [SnapshotError("HTTP 500"), RuntimeError("unexpected")])
def test_snapshot_failure_starts_empty(error, raw_tx, txid, fake_stream, fake_snapshot):
    """A failed snapshot leaves the set empty; the stream still runs."""
    stream = fake_stream([_add(raw_tx(7), 1)])

    async def run():
        async with SyncEngine(stream, fake_snapshot(error=error)) as engine:
            await asyncio.wait_for(stream.drained.wait(), WAIT)
            return _ids(engine.current()), engine.stats().snapshot_loaded

    pending, loaded = asyncio.run(run())
    assert pending == [txid(7)]
    assert loaded is False


def test_snapshot_skips_bad_records(raw_tx, fake_snapshot, fake_stream):
    engine = SyncEngine(fake_stream(), fake_snapshot([raw_tx(1), {"txid": "bad"}, raw_tx(2)]))
    assert asyncio.run(engine.load_snapshot()) is True
    assert len(engine.current()) == 2


def test_engine_without_snapshot_source(fake_stream):
    engine = SyncEngine(fake_stream())
    assert asyncio.run(engine.load_snapshot()) is False
    assert engine.current() == ()


# --- Message processing ---


def test_malformed_messages_are_dropped(raw_tx, txid, fake_stream):
    """Bad messages are reported as typed results and never stop the engine."""
    engine = SyncEngine(fake_stream())

    bad_json = engine.process_message("{not json")
    assert bad_json.ok is False
    assert isinstance(bad_json.error, DecodeError)

    bad_tx = engine.process_message(_add({"txid": txid(1), "vsize": 0, "fees": {"base": 1}}, 1))
    assert isinstance(bad_tx.error, NormalizeError)

    good = engine.process_message(_add(raw_tx(2), 2))
    assert good.ok
    assert good.change.added == (txid(2),)

    stats = engine.stats()
    assert stats.messages_received == 3
    assert stats.decode_errors == 1
    assert stats.normalize_errors == 1
    assert stats.events_applied == 1
    assert _ids(engine.current()) == [txid(2)]


def test_disconnect_through_engine(raw_tx, txid, fake_stream):
    notifier = LogNotifier()
    engine = SyncEngine(fake_stream(), notifier=notifier)
    engine.process_message(_add(raw_tx(1), 1))
    result = engine.process_message(_disconnect(raw_tx(1), raw_tx(2)))
    assert result.ok
    assert _ids(engine.current()) == [txid(1), txid(2)]
    entry = notifier.entries()[0]
    assert entry.event == "BlockDisconnected"
    assert entry.level == "WARNING"
    assert entry.message == f"Block {BLOCK_HASH[:8]}... disconnected, 2 txs back to mempool"


def test_fees_in_btc_flag(txid, fake_stream):
    engine = SyncEngine(fake_stream(), fees_in_btc=True)
    raw = {"txid": txid(1), "vsize": 100, "fees": {"base": 0.00002}}
    engine.process_message(_add(raw, 1))
    tx = engine.current()[0]
    assert tx.fees.base == 2000
    assert tx.fee_rate == 20.0


def test_notifier_failure_does_not_affect_store(raw_tx, txid, fake_stream):
    """A raising notifier is logged and ignored; the block is still applied."""
    notifier = ExplodingNotifier()
    engine = SyncEngine(fake_stream(), notifier=notifier)
    engine.process_message(_add(raw_tx(1), 1))
    result = engine.process_message(_connect(10, COINBASE, txid(1)))
    assert result.ok
    assert notifier.calls == 1
    assert engine.current() == ()


def test_sequence_gaps_are_observed_not_enforced(raw_tx, fake_stream):
    engine = SyncEngine(fake_stream())
    for seq, n in ((1, 1), (2, 2), (5, 3)):
        engine.process_message(_add(raw_tx(n), seq))
    assert engine.stats().sequence_gaps == 1
    assert len(engine.current()) == 3


def test_sequence_monitor():
    monitor = SequenceMonitor()
    assert monitor.observe(10) is False
    assert monitor.observe(11) is False
    assert monitor.observe(13) is True
    assert monitor.observe(13) is True
    assert monitor.gaps == 2
    monitor.reset()
    assert monitor.observe(1) is False


# --- Pause toggle ---


def test_toggle_pauses_and_merges(raw_tx, txid, fake_stream):
    """While paused the visible set is frozen; resume appends buffered entries."""
    engine = SyncEngine(fake_stream())
    engine.process_message(_add(raw_tx(1), 1))
    engine.process_message(_add(raw_tx(2), 2))

    assert engine.toggle() is SyncState.PAUSED
    version = engine.version
    engine.process_message(_add(raw_tx(3), 3))
    engine.process_message(_remove(txid(2), 4))
    assert _ids(engine.current()) == [txid(2), txid(1)]
    assert engine.version == version

    assert engine.toggle() is SyncState.LIVE
    assert _ids(engine.current()) == [txid(2), txid(1), txid(3)]
    assert engine.version > version


# --- Observation ---


def test_wait_for_update_wakes_on_change(raw_tx, txid, fake_stream):
    engine = SyncEngine(fake_stream())

    async def run():
        start = engine.version
        waiter = asyncio.create_task(engine.wait_for_update(start, timeout=WAIT))
        await asyncio.sleep(0)
        engine.process_message(_add(raw_tx(1), 1))
        return start, await waiter

    start, (version, txs) = asyncio.run(run())
    assert version > start
    assert _ids(txs) == [txid(1)]


def test_wait_for_update_times_out_without_change(fake_stream):
    engine = SyncEngine(fake_stream())

    async def run():
        await engine.wait_for_update(engine.version, timeout=0.05)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(run())


def test_wait_for_update_ignores_paused_activity(raw_tx, fake_stream):
    engine = SyncEngine(fake_stream())
    engine.toggle()

    async def run():
        waiter = asyncio.create_task(engine.wait_for_update(engine.version, timeout=0.1))
        await asyncio.sleep(0)
        engine.process_message(_add(raw_tx(1), 1))
        await waiter

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(run())


# --- Default wiring ---


def test_build_engine_uses_settings():
    settings = Settings(
        snapshot_url="http://node.local/api/mempool",
        stream_url="ws://node.local/ws",
        log_buffer_size=5,
    )
    engine = build_engine(settings)
    assert isinstance(engine._stream, WebSocketStreamSource)
    assert engine._stream.url == "ws://node.local/ws"
    assert isinstance(engine._snapshot, HttpSnapshotSource)
    assert engine._snapshot.url == "http://node.local/api/mempool"
    assert isinstance(engine.notifier, LogNotifier)


# --- Resilience ---


class FlakyStore(ReconciliationStore):
    """Store whose first apply raises something outside the error taxonomy."""

    def __init__(self) -> None:
        super().__init__()
        self.failures = 0

    def apply(self, event):
        if self.failures == 0:
            self.failures += 1
            raise RuntimeError("unexpected store failure")
        return super().apply(event)


def test_non_finite_btc_fee_is_dropped_and_stream_continues(txid, fake_stream):
    """A NaN fee in BTC mode drops that message only; the next Add still applies."""
    nan_add = (
        '{"event": "A", "sequence": 1, "transaction": '
        f'{{"txid": "{txid(1)}", "vsize": 100, "fees": {{"base": NaN}}}}}}'
    )
    good = {"txid": txid(2), "vsize": 100, "fees": {"base": 0.00001}}
    stream = fake_stream([nan_add, _add(good, 2)])

    async def run():
        async with SyncEngine(stream, fees_in_btc=True) as engine:
            await asyncio.wait_for(stream.drained.wait(), WAIT)
            return _ids(engine.current()), engine.stats().to_dict(), engine.running

    pending, stats, running = asyncio.run(run())
    assert pending == [txid(2)]
    assert stats["messages_received"] == 2
    assert stats["normalize_errors"] == 1
    assert stats["events_applied"] == 1
    assert running is True


def test_consumer_survives_unexpected_message_error(raw_tx, txid, fake_stream):
    """An exception outside DecodeError / NormalizeError is logged and the loop goes on."""
    stream = fake_stream([_add(raw_tx(1), 1), _add(raw_tx(2), 2)])

    async def run():
        async with SyncEngine(stream, store=FlakyStore()) as engine:
            await asyncio.wait_for(stream.drained.wait(), WAIT)
            return _ids(engine.current()), engine.stats().unexpected_errors, engine.running

    pending, unexpected, running = asyncio.run(run())
    assert pending == [txid(2)]
    assert unexpected == 1
    assert running is True


def test_uppercase_txids_match_on_remove_and_connect(raw_tx, txid, fake_stream):
    """Add, Remove and BlockConnect agree on txid case."""
    engine = SyncEngine(fake_stream())
    first = raw_tx(1)
    first["txid"] = first["txid"].upper()
    engine.process_message(_add(first, 1))
    engine.process_message(_add(raw_tx(2), 2))
    assert _ids(engine.current()) == [txid(2), txid(1)]

    engine.process_message(_remove(txid(1).upper(), 3))
    assert _ids(engine.current()) == [txid(2)]

    engine.process_message(_connect(5, COINBASE, txid(2).upper()))
    assert engine.current() == ()


def test_engine_stop_signals_the_stream(fake_stream):
    stream = fake_stream()

    async def run():
        async with SyncEngine(stream):
            # let the consumer task open the stream
            await asyncio.sleep(0)

    asyncio.run(run())
    assert stream.opened
    assert stream.stopped
    assert stream.closed
