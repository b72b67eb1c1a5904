"""
Analytics over the pending set: selection summaries and CSV export.
"""

from mempool_sync.analytics.export import (
    CSV_HEADERS,
    default_export_filename,
    generate_transaction_csv,
)
from mempool_sync.analytics.summary import (
    MAX_BLOCK_WEIGHT,
    TransactionSummary,
    select_transactions,
    sort_by_fee_rate,
    summarize,
)

__all__ = [
    "CSV_HEADERS",
    "MAX_BLOCK_WEIGHT",
    "TransactionSummary",
    "default_export_filename",
    "generate_transaction_csv",
    "select_transactions",
    "sort_by_fee_rate",
    "summarize",
]
