"""
Change descriptions returned by the reconciliation store.

The store never presents anything itself: each mutation returns a ChangeSet
(which set changed, which txids were added / updated / removed) and, for
block events, a BlockNotice that a notifier may turn into a toast or log line.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SyncState(str, Enum):
    LIVE = "live"
    PAUSED = "paused"


class BlockEventKind(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class BlockNotice:
    """
    Descriptive record of a block event for the notification side-channel.

    ``tx_count`` is the number of transactions the event affects upstream:
    confirmed transactions (coinbase excluded) for a connect, transactions
    returned to the mempool for a disconnect. It does not depend on how many
    of them the store happened to hold.
    """

    kind: BlockEventKind
    block_hash: str
    height: int | None
    tx_count: int

    @classmethod
    def connected(cls, block_hash: str, height: int, txids: tuple[str, ...]) -> "BlockNotice":
        # txids includes the coinbase, which never sat in the mempool
        return cls(
            kind=BlockEventKind.CONNECTED,
            block_hash=block_hash,
            height=height,
            tx_count=max(len(txids) - 1, 0),
        )

    @classmethod
    def disconnected(cls, block_hash: str, tx_count: int) -> "BlockNotice":
        return cls(
            kind=BlockEventKind.DISCONNECTED,
            block_hash=block_hash,
            height=None,
            tx_count=tx_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "block_hash": self.block_hash,
            "height": self.height,
            "tx_count": self.tx_count,
        }


@dataclass(frozen=True)
class ChangeSet:
    """
    Diff produced by one store operation.

    ``target`` says which collection the operation touched: LIVE for the
    visible pending set, PAUSED for the buffer.
    """

    target: SyncState
    added: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    block: BlockNotice | None = None

    @property
    def changed(self) -> bool:
        """True if the target collection is different after the operation."""
        return bool(self.added or self.updated or self.removed)

    @property
    def visible(self) -> bool:
        """True if readers of the pending set can observe this change."""
        return self.target is SyncState.LIVE and self.changed

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target.value,
            "added": list(self.added),
            "updated": list(self.updated),
            "removed": list(self.removed),
            "block": self.block.to_dict() if self.block is not None else None,
        }
