"""
Aggregate statistics over a set of pending transactions.

Totals (count, vsize, weight, base fees), average fee rate weighted by size,
deepest ancestor / descendant chains, and how much of a block the selection
would fill. Pure functions over Transaction tuples; nothing here touches the
store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from mempool_sync.stream_listener.models import Transaction

MAX_BLOCK_WEIGHT = 4_000_000
SATS_PER_BTC = 100_000_000


@dataclass(frozen=True)
class TransactionSummary:
    total_transactions: int = 0
    total_vsize: int = 0
    total_weight: int = 0
    total_fees: int = 0
    """Sum of base fees in satoshis."""
    average_fee_rate: float = 0.0
    """total_fees / total_vsize (sat/vB); 0 for an empty selection."""
    max_ancestor_count: int = 0
    max_descendant_count: int = 0

    @property
    def total_fees_btc(self) -> float:
        return self.total_fees / SATS_PER_BTC

    @property
    def block_weight_share(self) -> float:
        """Percentage of the consensus block weight limit."""
        return self.total_weight / MAX_BLOCK_WEIGHT * 100

    @property
    def average_vsize(self) -> float:
        return self.total_vsize / self.total_transactions if self.total_transactions else 0.0

    @property
    def average_weight(self) -> float:
        return self.total_weight / self.total_transactions if self.total_transactions else 0.0

    @property
    def average_fee(self) -> float:
        return self.total_fees / self.total_transactions if self.total_transactions else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_transactions": self.total_transactions,
            "total_vsize": self.total_vsize,
            "total_weight": self.total_weight,
            "total_fees": self.total_fees,
            "total_fees_btc": round(self.total_fees_btc, 8),
            "average_fee_rate": self.average_fee_rate,
            "max_ancestor_count": self.max_ancestor_count,
            "max_descendant_count": self.max_descendant_count,
            "average_vsize": self.average_vsize,
            "average_weight": self.average_weight,
            "average_fee": self.average_fee,
            "block_weight_share": self.block_weight_share,
        }


def summarize(transactions: Sequence[Transaction]) -> TransactionSummary:
    """Compute the summary for a selection; an empty selection yields all zeros."""
    if not transactions:
        return TransactionSummary()
    total_vsize = sum(tx.vsize for tx in transactions)
    total_fees = sum(tx.fees.base for tx in transactions)
    return TransactionSummary(
        total_transactions=len(transactions),
        total_vsize=total_vsize,
        total_weight=sum(tx.weight for tx in transactions),
        total_fees=total_fees,
        average_fee_rate=total_fees / total_vsize if total_vsize > 0 else 0.0,
        max_ancestor_count=max(tx.ancestor_count for tx in transactions),
        max_descendant_count=max(tx.descendant_count for tx in transactions),
    )


def select_transactions(
    transactions: Sequence[Transaction],
    txids: Iterable[str],
) -> list[Transaction]:
    """Subset of ``transactions`` whose txid is in ``txids``, keeping set order."""
    wanted = {t.lower() for t in txids}
    return [tx for tx in transactions if tx.txid in wanted]


def sort_by_fee_rate(transactions: Sequence[Transaction]) -> list[Transaction]:
    """Highest fee rate first; ties keep recency order."""
    return sorted(transactions, key=lambda tx: tx.fee_rate, reverse=True)
