"""
Sequence-stream decoder: raw WebSocket text to typed stream events.

Each message is a UTF-8 JSON object tagged by a single-character ``event``
discriminator (A / R / C / D). Purely structural: transaction payloads are
left as raw mappings for the normalizer. Anything malformed or unrecognized
raises DecodeError; the caller decides whether to drop or escalate.
"""

from __future__ import annotations

import json
from typing import Any

from mempool_sync.core.exceptions import DecodeError
from mempool_sync.stream_listener.models import (
    BlockConnect,
    BlockDisconnect,
    EventTag,
    MempoolAdd,
    MempoolRemove,
    StreamEvent,
)

_TAGS = {tag.value: tag for tag in EventTag}


def _load_json(message: str | bytes | bytearray) -> dict[str, Any]:
    """Parse the message text into a JSON object; raise DecodeError otherwise."""
    if isinstance(message, (bytes, bytearray)):
        try:
            message = bytes(message).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Message is not valid UTF-8: {e}", raw=bytes(message)) from e
    try:
        doc = json.loads(message)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Malformed JSON: {e}", raw=message) from e
    if not isinstance(doc, dict):
        raise DecodeError(
            f"Expected a JSON object, got {type(doc).__name__}", raw=message
        )
    return doc


def _require(doc: dict[str, Any], key: str, kind: type | tuple[type, ...], tag: str) -> Any:
    value = doc.get(key)
    # bool is an int subclass; a boolean is never a valid sequence or height
    if value is None or isinstance(value, bool) or not isinstance(value, kind):
        raise DecodeError(f"Event {tag!r} missing or invalid field {key!r}")
    return value


def _txid_list(values: list[Any], key: str, tag: str) -> tuple[str, ...]:
    if not all(isinstance(v, str) for v in values):
        raise DecodeError(f"Event {tag!r} field {key!r} must contain only strings")
    return tuple(v.lower() for v in values)


def _decode_add(doc: dict[str, Any]) -> MempoolAdd:
    return MempoolAdd(
        sequence=_require(doc, "sequence", int, "A"),
        transaction=_require(doc, "transaction", dict, "A"),
    )


def _decode_remove(doc: dict[str, Any]) -> MempoolRemove:
    txid = _require(doc, "txid", str, "R")
    if not txid:
        raise DecodeError("Event 'R' has an empty txid")
    # txids are kept lowercase everywhere so they match normalized transactions
    return MempoolRemove(sequence=_require(doc, "sequence", int, "R"), txid=txid.lower())


def _decode_connect(doc: dict[str, Any]) -> BlockConnect:
    block = _require(doc, "block", dict, "C")
    txids = _require(block, "txids", list, "C")
    return BlockConnect(
        block_hash=_require(block, "block_hash", str, "C"),
        height=_require(block, "height", int, "C"),
        txids=_txid_list(txids, "txids", "C"),
    )


def _decode_disconnect(doc: dict[str, Any]) -> BlockDisconnect:
    transactions = _require(doc, "transactions", list, "D")
    if not all(isinstance(tx, dict) for tx in transactions):
        raise DecodeError("Event 'D' field 'transactions' must contain only objects")
    return BlockDisconnect(
        block_hash=_require(doc, "block_hash", str, "D"),
        transactions=tuple(transactions),
    )


_DECODERS = {
    EventTag.ADD: _decode_add,
    EventTag.REMOVE: _decode_remove,
    EventTag.BLOCK_CONNECT: _decode_connect,
    EventTag.BLOCK_DISCONNECT: _decode_disconnect,
}


def decode(message: str | bytes | bytearray) -> StreamEvent:
    """
    Decode one raw stream message into exactly one StreamEvent.

    Raises DecodeError for invalid UTF-8, malformed JSON, a non-object
    document, a missing or unknown ``event`` tag, or a payload missing the
    fields its tag requires.
    """
    doc = _load_json(message)
    raw_tag = doc.get("event")
    tag = _TAGS.get(raw_tag) if isinstance(raw_tag, str) else None
    if tag is None:
        raise DecodeError(f"Unknown or missing event tag: {raw_tag!r}", raw=message)
    try:
        return _DECODERS[tag](doc)
    except DecodeError as e:
        e.raw = message
        raise
