"""
Alerts: block-event notifications and the recent log feed.

Converts store BlockNotices into log lines and bounded in-memory entries.
Fire-and-forget: never feeds back into store state.
"""

from mempool_sync.alerts.notifier import (
    LogEntry,
    LogNotifier,
    Notifier,
    describe,
)

__all__ = [
    "LogEntry",
    "LogNotifier",
    "Notifier",
    "describe",
]
