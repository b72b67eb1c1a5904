"""
CSV export of pending transactions.

One row per transaction: txid, fee rate, base fee, size and first-seen time
(ISO 8601, UTC). Every field is quoted.
"""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone
from typing import Sequence

from mempool_sync.stream_listener.models import Transaction

CSV_HEADERS = ("Transaction ID", "Fee Rate", "Base Fee", "Size", "Time")


def _format_time(ts: int) -> str:
    if ts <= 0:
        return ""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def transaction_row(tx: Transaction) -> list[str]:
    return [
        tx.txid,
        f"{tx.fee_rate:.2f} sat/vB",
        f"{tx.fees.base} sat",
        f"{tx.vsize} vB",
        _format_time(tx.time),
    ]


def generate_transaction_csv(
    transactions: Sequence[Transaction],
    include_headers: bool = True,
) -> str:
    """Return CSV text (``\\n`` line endings, no trailing newline)."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    if include_headers:
        writer.writerow(CSV_HEADERS)
    for tx in transactions:
        writer.writerow(transaction_row(tx))
    return buf.getvalue().rstrip("\n")


def default_export_filename(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"transactions-{now.date().isoformat()}.csv"
