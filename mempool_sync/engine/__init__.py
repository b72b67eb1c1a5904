"""
Engine package: owns the snapshot load and live subscription lifecycle.

Feeds decoded, normalized stream events into the reconciliation store and
exposes the pending set plus the pause toggle to consumers.
"""

from mempool_sync.engine.sync_engine import (
    EngineStats,
    ProcessResult,
    SequenceMonitor,
    SnapshotSource,
    StreamSource,
    SyncEngine,
    build_engine,
)

__all__ = [
    "EngineStats",
    "ProcessResult",
    "SequenceMonitor",
    "SnapshotSource",
    "StreamSource",
    "SyncEngine",
    "build_engine",
]
