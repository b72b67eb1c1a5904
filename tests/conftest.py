"""
Pytest fixtures for Mempool Sync tests: raw mempool entries, fake stream and
snapshot collaborators.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest


def make_txid(n: int) -> str:
    return f"{n:064x}"


class FakeStream:
    """
    In-memory stream source: yields the given messages, sets ``drained``,
    then blocks until the consumer closes it. ``closed`` records the release.
    """

    def __init__(self, messages: list[str | bytes] | None = None, *, hold_open: bool = True) -> None:
        self._messages = list(messages or [])
        self._hold_open = hold_open
        self.drained = asyncio.Event()
        self.opened = False
        self.closed = False
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True

    async def messages(self):
        self.opened = True
        try:
            for msg in self._messages:
                yield msg
            self.drained.set()
            if self._hold_open:
                await asyncio.Event().wait()
        finally:
            self.closed = True


class FakeSnapshot:
    """Snapshot source returning fixed records or raising a fixed error."""

    def __init__(self, records: list[dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        self._records = list(records or [])
        self._error = error
        self.calls = 0

    async def fetch(self) -> list[dict[str, Any]]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return list(self._records)


@pytest.fixture
def raw_tx():
    """Factory for raw mempool entries keyed by an integer id."""

    def _make(n: int, *, base: int = 1000, vsize: int = 250, **extra: Any) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "txid": make_txid(n),
            "vsize": vsize,
            "time": 1_700_000_000 + n,
            "height": 840_000,
            "fees": {"base": base, "modified": base, "ancestor": base, "descendant": base},
        }
        entry.update(extra)
        return entry

    return _make


@pytest.fixture
def txid():
    return make_txid


@pytest.fixture
def fake_stream():
    """The FakeStream class; build one per test with the messages to replay."""
    return FakeStream


@pytest.fixture
def fake_snapshot():
    return FakeSnapshot
