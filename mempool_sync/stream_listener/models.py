"""
Data models for the mempool stream.

Responsibilities:
- Canonical Transaction (frozen, keyed by txid) with its fee components.
- The four sequence-stream events (A / R / C / D) as frozen dataclasses.
- Events leave the decoder with raw transaction mappings; the normalizer
  replaces them with Transaction instances before the store sees them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

RawTransaction = Mapping[str, Any]


class EventTag(str, Enum):
    ADD = "A"
    REMOVE = "R"
    BLOCK_CONNECT = "C"
    BLOCK_DISCONNECT = "D"


@dataclass(frozen=True)
class Fees:
    """Fee components in satoshis."""

    base: int
    modified: int
    ancestor: int
    descendant: int

    def to_dict(self) -> dict[str, int]:
        return {
            "base": self.base,
            "modified": self.modified,
            "ancestor": self.ancestor,
            "descendant": self.descendant,
        }


@dataclass(frozen=True)
class Transaction:
    """
    Canonical pending transaction.

    Built only by the normalizer. Immutable, so a PendingSet tuple handed to a
    reader can never change underneath it.
    """

    txid: str
    """64-character hex transaction id; identity key."""
    wtxid: str
    vsize: int
    """Virtual size in vbytes; always > 0."""
    weight: int
    """Weight units; vsize * 4 when upstream omits it."""
    fees: Fees
    time: int = 0
    """Unix timestamp (seconds) the node first saw the transaction."""
    height: int = 0
    """Chain height when the transaction entered the mempool."""
    ancestor_count: int = 0
    ancestor_size: int = 0
    descendant_count: int = 0
    descendant_size: int = 0
    depends: tuple[str, ...] = ()
    spent_by: tuple[str, ...] = ()
    bip125_replaceable: bool = False
    unbroadcast: bool = False
    fee_rate: float = field(init=False)
    """sat/vB, derived from fees.base and vsize; never taken from input."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "fee_rate", self.fees.base / self.vsize)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dict."""
        return {
            "txid": self.txid,
            "wtxid": self.wtxid,
            "vsize": self.vsize,
            "weight": self.weight,
            "fees": self.fees.to_dict(),
            "fee_rate": self.fee_rate,
            "time": self.time,
            "height": self.height,
            "ancestor_count": self.ancestor_count,
            "ancestor_size": self.ancestor_size,
            "descendant_count": self.descendant_count,
            "descendant_size": self.descendant_size,
            "depends": list(self.depends),
            "spent_by": list(self.spent_by),
            "bip125_replaceable": self.bip125_replaceable,
            "unbroadcast": self.unbroadcast,
        }


@dataclass(frozen=True)
class MempoolAdd:
    """Transaction entered the mempool."""

    tag: ClassVar[EventTag] = EventTag.ADD

    sequence: int
    transaction: Transaction | RawTransaction


@dataclass(frozen=True)
class MempoolRemove:
    """Transaction left the mempool (confirmed, evicted or replaced)."""

    tag: ClassVar[EventTag] = EventTag.REMOVE

    sequence: int
    txid: str


@dataclass(frozen=True)
class BlockConnect:
    """A block was mined; every listed txid (coinbase included) leaves the mempool."""

    tag: ClassVar[EventTag] = EventTag.BLOCK_CONNECT

    block_hash: str
    height: int
    txids: tuple[str, ...]


@dataclass(frozen=True)
class BlockDisconnect:
    """Reorg: the block's transactions return to the mempool."""

    tag: ClassVar[EventTag] = EventTag.BLOCK_DISCONNECT

    block_hash: str
    transactions: tuple[Transaction | RawTransaction, ...]


StreamEvent = Union[MempoolAdd, MempoolRemove, BlockConnect, BlockDisconnect]
