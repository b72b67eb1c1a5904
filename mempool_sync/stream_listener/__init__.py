"""
Mempool stream listener package.

Subscribes to the node proxy's sequence stream (WebSocket) and fetches the
initial snapshot (REST), decodes raw messages into typed events and
normalizes raw transaction entries for the reconciliation store.
"""

from mempool_sync.stream_listener.models import (
    BlockConnect,
    BlockDisconnect,
    EventTag,
    Fees,
    MempoolAdd,
    MempoolRemove,
    StreamEvent,
    Transaction,
)
from mempool_sync.stream_listener.normalizer import (
    normalize,
    normalize_batch,
    normalize_event,
)
from mempool_sync.stream_listener.parser import decode

__all__ = [
    "BlockConnect",
    "BlockDisconnect",
    "EventTag",
    "Fees",
    "MempoolAdd",
    "MempoolRemove",
    "StreamEvent",
    "Transaction",
    "decode",
    "normalize",
    "normalize_batch",
    "normalize_event",
]
