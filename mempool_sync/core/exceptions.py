"""
Application-level exceptions.

Every error raised by the sync core derives from MempoolSyncError and carries
a stable ``code`` so the engine, the API and the logs report it consistently.
None of them is fatal: the engine turns them into dropped messages or an
empty initial state.
"""

from __future__ import annotations

from typing import Any


class MempoolSyncError(Exception):
    """Base class for sync-core errors."""

    code = "mempool_sync_error"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class DecodeError(MempoolSyncError):
    """A stream message is not valid JSON or not a recognized event."""

    code = "decode_error"

    def __init__(self, message: str, *, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class NormalizeError(MempoolSyncError):
    """A raw transaction record cannot be turned into a Transaction."""

    code = "normalize_error"

    def __init__(self, message: str, *, txid: str | None = None) -> None:
        super().__init__(message)
        self.txid = txid

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["txid"] = self.txid
        return out


class SnapshotError(MempoolSyncError):
    """The one-shot mempool snapshot could not be fetched or read."""

    code = "snapshot_error"
