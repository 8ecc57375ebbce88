"""
Field normalization: raw ranking entries -> display forms stored in `node`.

- capacity: satoshis -> BTC as a plain decimal string ("1.5", "0", "0.00000001")
- firstSeen: Unix seconds -> ISO-8601 UTC with a literal Z ("2020-09-30T01:39:00Z")

Both conversions are applied once, before persistence.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from .schemas import RawNode

SATS_PER_BTC = 100_000_000
BTC_FRACTION_DIGITS = 8

_QUANTUM = Decimal(1).scaleb(-BTC_FRACTION_DIGITS)


class ConversionError(RuntimeError):
    pass


@dataclass(frozen=True)
class NormalizedNode:
    public_key: str
    alias: str
    capacity: str
    first_seen: str


def format_capacity(sats: int) -> str:
    """
    Convert satoshis to a BTC decimal string using fixed-point arithmetic.

    Exactly 8 fraction digits are kept, then trailing zeros are dropped so
    whole amounts render without a decimal point. Negative amounts never get
    here: RawNode rejects them when the ranking is fetched.
    """
    try:
        btc = (Decimal(sats) / SATS_PER_BTC).quantize(_QUANTUM)
    except InvalidOperation as exc:
        raise ConversionError(f"Capacity {sats} is too large to convert.") from exc
    text = format(btc, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_first_seen(ts: int) -> str:
    try:
        dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise ConversionError(f"firstSeen {ts} is outside the representable timestamp range.") from exc
    return dt.replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def normalize_node(raw: RawNode) -> NormalizedNode:
    return NormalizedNode(
        public_key=raw.public_key,
        alias=raw.alias,
        capacity=format_capacity(raw.capacity),
        first_seen=format_first_seen(raw.first_seen),
    )
