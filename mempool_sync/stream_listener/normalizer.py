"""
Transaction normalizer: raw mempool entries to canonical Transaction models.

Responsibilities:
- Convert getrawmempool-style entries (snake_case proxy keys or Bitcoin Core
  RPC spelling) into Transaction.
- Integer fees in satoshis; optional exact BTC -> satoshi conversion.
- Fill defaults (weight, wtxid, depends, spent_by) and derive the fee rate.
- Replace raw payloads in decoded stream events with Transactions.
"""

from __future__ import annotations

import dataclasses
import re
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from mempool_sync.core.exceptions import NormalizeError
from mempool_sync.stream_listener.models import (
    BlockDisconnect,
    Fees,
    MempoolAdd,
    RawTransaction,
    StreamEvent,
    Transaction,
)

SATS_PER_BTC = 100_000_000
WITNESS_SCALE_FACTOR = 4

_TXID_RE = re.compile(r"^[0-9a-fA-F]{64}$")

# canonical field -> accepted raw keys, first match wins
_ALIASES: dict[str, tuple[str, ...]] = {
    "ancestor_count": ("ancestor_count", "ancestorcount"),
    "ancestor_size": ("ancestor_size", "ancestorsize"),
    "descendant_count": ("descendant_count", "descendantcount"),
    "descendant_size": ("descendant_size", "descendantsize"),
    "spent_by": ("spent_by", "spentby"),
    "bip125_replaceable": ("bip125_replaceable", "bip125-replaceable"),
}


def _pick(raw: Mapping[str, Any], name: str) -> Any:
    for key in _ALIASES.get(name, (name,)):
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _as_int(value: Any, name: str, txid: str | None) -> int:
    """Accept ints and integral floats; reject bools, fractions and anything else."""
    if isinstance(value, bool):
        raise NormalizeError(f"Field {name!r} must be an integer, got bool", txid=txid)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise NormalizeError(f"Field {name!r} must be an integer, got {value!r}", txid=txid)


def _optional_int(raw: Mapping[str, Any], name: str, txid: str, default: int = 0) -> int:
    value = _pick(raw, name)
    if value is None:
        return default
    out = _as_int(value, name, txid)
    if out < 0:
        raise NormalizeError(f"Field {name!r} must be non-negative, got {out}", txid=txid)
    return out


def _txid_list(raw: Mapping[str, Any], name: str, txid: str) -> tuple[str, ...]:
    value = _pick(raw, name)
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise NormalizeError(f"Field {name!r} must be a list of txids", txid=txid)
    return tuple(value)


def _to_sats(value: Any, name: str, txid: str, fees_in_btc: bool) -> int:
    if fees_in_btc:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise NormalizeError(f"Fee {name!r} must be numeric, got {value!r}", txid=txid)
        try:
            amount = Decimal(str(value)) * SATS_PER_BTC
        except InvalidOperation as e:
            raise NormalizeError(f"Fee {name!r} is not a number: {value!r}", txid=txid) from e
        # json.loads accepts NaN / Infinity; neither is an amount
        if not amount.is_finite():
            raise NormalizeError(f"Fee {name!r} must be finite, got {value!r}", txid=txid)
        sats = int(amount.to_integral_value(rounding=ROUND_HALF_EVEN))
    else:
        sats = _as_int(value, f"fees.{name}", txid)
    if sats < 0:
        raise NormalizeError(f"Fee {name!r} must be non-negative, got {sats}", txid=txid)
    return sats


def _normalize_fees(raw: Mapping[str, Any], txid: str, fees_in_btc: bool) -> Fees:
    fees = raw.get("fees")
    if not isinstance(fees, Mapping):
        raise NormalizeError("Missing required field 'fees'", txid=txid)
    if fees.get("base") is None:
        raise NormalizeError("Missing required field 'fees.base'", txid=txid)
    base = _to_sats(fees["base"], "base", txid, fees_in_btc)
    # Components the upstream omits default to the base fee (no package context known)
    parts = {
        name: _to_sats(fees[name], name, txid, fees_in_btc) if fees.get(name) is not None else base
        for name in ("modified", "ancestor", "descendant")
    }
    return Fees(base=base, **parts)


def normalize(raw: RawTransaction, *, fees_in_btc: bool = False) -> Transaction:
    """
    Build a canonical Transaction from one raw mempool entry.

    Required: txid (64 hex chars), vsize (> 0) and fees.base. Defaults:
    weight -> vsize * 4, wtxid -> txid, depends / spent_by -> empty, counts
    and sizes -> 0, flags -> False. Raises NormalizeError on anything else
    missing, mistyped or negative.
    """
    if not isinstance(raw, Mapping):
        raise NormalizeError(f"Transaction must be an object, got {type(raw).__name__}")
    txid = raw.get("txid")
    if not isinstance(txid, str) or not _TXID_RE.match(txid):
        raise NormalizeError(f"Missing or invalid txid: {txid!r}")
    txid = txid.lower()

    if raw.get("vsize") is None:
        raise NormalizeError("Missing required field 'vsize'", txid=txid)
    vsize = _as_int(raw["vsize"], "vsize", txid)
    if vsize <= 0:
        raise NormalizeError(f"vsize must be positive, got {vsize}", txid=txid)

    weight = _optional_int(raw, "weight", txid, default=vsize * WITNESS_SCALE_FACTOR)
    wtxid = raw.get("wtxid")
    if not isinstance(wtxid, str) or not wtxid:
        wtxid = txid

    return Transaction(
        txid=txid,
        wtxid=wtxid,
        vsize=vsize,
        weight=weight,
        fees=_normalize_fees(raw, txid, fees_in_btc),
        time=_optional_int(raw, "time", txid),
        height=_optional_int(raw, "height", txid),
        ancestor_count=_optional_int(raw, "ancestor_count", txid),
        ancestor_size=_optional_int(raw, "ancestor_size", txid),
        descendant_count=_optional_int(raw, "descendant_count", txid),
        descendant_size=_optional_int(raw, "descendant_size", txid),
        depends=_txid_list(raw, "depends", txid),
        spent_by=_txid_list(raw, "spent_by", txid),
        bip125_replaceable=bool(_pick(raw, "bip125_replaceable")),
        unbroadcast=bool(raw.get("unbroadcast")),
    )


def normalize_batch(
    raw_list: Iterable[RawTransaction],
    *,
    fees_in_btc: bool = False,
) -> tuple[list[Transaction], list[NormalizeError]]:
    """
    Normalize many entries; bad entries are skipped and returned as errors.

    Returned transactions keep input order.
    """
    transactions: list[Transaction] = []
    errors: list[NormalizeError] = []
    for raw in raw_list:
        try:
            transactions.append(normalize(raw, fees_in_btc=fees_in_btc))
        except NormalizeError as e:
            errors.append(e)
    return transactions, errors


def _ensure(tx: Transaction | RawTransaction, fees_in_btc: bool) -> Transaction:
    if isinstance(tx, Transaction):
        return tx
    return normalize(tx, fees_in_btc=fees_in_btc)


def normalize_event(event: StreamEvent, *, fees_in_btc: bool = False) -> StreamEvent:
    """
    Return the event with raw transaction payloads replaced by Transactions.

    Remove and BlockConnect carry no payload and are returned unchanged. A
    single bad payload in a BlockDisconnect fails the whole event.
    """
    if isinstance(event, MempoolAdd):
        return dataclasses.replace(
            event, transaction=_ensure(event.transaction, fees_in_btc)
        )
    if isinstance(event, BlockDisconnect):
        return dataclasses.replace(
            event,
            transactions=tuple(_ensure(tx, fees_in_btc) for tx in event.transactions),
        )
    return event
