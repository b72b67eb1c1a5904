"""
Core utilities: shared error taxonomy used across listener, store and engine.
"""

from mempool_sync.core.exceptions import (
    DecodeError,
    MempoolSyncError,
    NormalizeError,
    SnapshotError,
)

__all__ = [
    "DecodeError",
    "MempoolSyncError",
    "NormalizeError",
    "SnapshotError",
]
