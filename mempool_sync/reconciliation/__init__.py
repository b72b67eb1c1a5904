"""
Reconciliation package: canonical pending set, pause buffer, merge rules.
"""

from mempool_sync.reconciliation.changes import (
    BlockEventKind,
    BlockNotice,
    ChangeSet,
    SyncState,
)
from mempool_sync.reconciliation.store import ReconciliationStore

__all__ = [
    "BlockEventKind",
    "BlockNotice",
    "ChangeSet",
    "ReconciliationStore",
    "SyncState",
]
