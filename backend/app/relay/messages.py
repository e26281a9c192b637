"""Wire codec for upstream and downstream frames.

Upstream frames are JSON arrays of records tagged by ``T``. Each record is
classified into one of the record types below before anything else looks at
it, so the rest of the relay never pokes at raw dicts:

    q             -> QuoteRecord
    success       -> StatusRecord (``msg`` is "connected" or "authenticated")
    subscription  -> SubscriptionAck
    error         -> ErrorRecord
    anything else -> UnknownRecord

A record with the quote tag that cannot be normalized becomes a
MalformedRecord, which callers log and skip.

Downstream control frames are ``{"action": "subscribe"|"unsubscribe",
"symbols": [...]}`` objects decoded by ``decode_client_control``.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Literal, Union

from .models import Quote

QUOTE_TAG = "q"
SUCCESS_TAG = "success"
SUBSCRIPTION_TAG = "subscription"
ERROR_TAG = "error"

AUTHENTICATED_MSG = "authenticated"

CLIENT_ACTIONS = ("subscribe", "unsubscribe")


class MessageDecodeError(ValueError):
    """Raised when a frame cannot be decoded."""


@dataclass(frozen=True, slots=True)
class QuoteRecord:
    quote: Quote


@dataclass(frozen=True, slots=True)
class StatusRecord:
    message: str

    @property
    def is_authenticated(self) -> bool:
        return self.message == AUTHENTICATED_MSG


@dataclass(frozen=True, slots=True)
class SubscriptionAck:
    quotes: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    code: int | None
    message: str


@dataclass(frozen=True, slots=True)
class UnknownRecord:
    tag: str


@dataclass(frozen=True, slots=True)
class MalformedRecord:
    reason: str


UpstreamRecord = Union[
    QuoteRecord, StatusRecord, SubscriptionAck, ErrorRecord, UnknownRecord, MalformedRecord
]


@dataclass(frozen=True, slots=True)
class ClientControl:
    """A decoded downstream subscribe/unsubscribe request."""

    action: Literal["subscribe", "unsubscribe"]
    symbols: tuple[str, ...]


# --- Upstream: outbound ---


def auth_message(key: str, secret: str) -> dict:
    return {"action": "auth", "key": key, "secret": secret}


def subscribe_message(symbols: list[str]) -> dict:
    return {"action": "subscribe", "quotes": list(symbols)}


def unsubscribe_message(symbols: list[str]) -> dict:
    return {"action": "unsubscribe", "quotes": list(symbols)}


# --- Upstream: inbound ---


def _loads(raw: str | bytes) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MessageDecodeError(f"frame is not valid JSON: {exc}") from exc


def _to_float(value: Any) -> float | None:
    """Parse a numeric field; None for missing, non-numeric or NaN values."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def _to_int(value: Any) -> int:
    parsed = _to_float(value)
    return int(parsed) if parsed is not None else 0


def parse_quote(record: dict) -> Quote:
    """Normalize a raw quote record.

    The last price ``p`` wins when present and non-zero; otherwise the bid
    price ``bp`` stands in for it. Raises MessageDecodeError when neither
    yields a price or the symbol is missing.
    """
    symbol = record.get("S")
    if not isinstance(symbol, str) or not symbol.strip():
        raise MessageDecodeError("quote record has no symbol")

    bid = _to_float(record.get("bp"))
    ask = _to_float(record.get("ap"))
    price = _to_float(record.get("p")) or bid
    if price is None:
        raise MessageDecodeError(f"quote record for {symbol} has no price")

    timestamp = record.get("t")
    return Quote(
        symbol=symbol.strip().upper(),
        price=price,
        bid=bid if bid is not None else 0.0,
        ask=ask if ask is not None else 0.0,
        bid_size=_to_int(record.get("bs")),
        ask_size=_to_int(record.get("as")),
        timestamp=str(timestamp) if timestamp is not None else "",
    )


def classify_record(record: Any) -> UpstreamRecord:
    """Classify one element of an upstream frame."""
    if not isinstance(record, dict):
        return MalformedRecord(f"record is {type(record).__name__}, not an object")

    tag = record.get("T")
    if tag == QUOTE_TAG:
        try:
            return QuoteRecord(parse_quote(record))
        except MessageDecodeError as exc:
            return MalformedRecord(str(exc))
    if tag == SUCCESS_TAG:
        return StatusRecord(str(record.get("msg", "")))
    if tag == SUBSCRIPTION_TAG:
        quotes = record.get("quotes") or []
        return SubscriptionAck(tuple(str(s) for s in quotes if isinstance(s, str)))
    if tag == ERROR_TAG:
        code = record.get("code")
        return ErrorRecord(
            code=code if isinstance(code, int) else None,
            message=str(record.get("msg", "")),
        )
    return UnknownRecord(str(tag))


def decode_frame(raw: str | bytes) -> list[UpstreamRecord]:
    """Decode an upstream frame into classified records.

    A bare object is treated as a one-element frame. Anything else that is
    not an array raises MessageDecodeError.
    """
    data = _loads(raw)
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise MessageDecodeError(f"frame is {type(data).__name__}, expected an array")
    return [classify_record(item) for item in data]


# --- Downstream ---


def normalize_symbols(symbols: Any) -> tuple[str, ...]:
    """Strip, upper-case and de-duplicate symbols, preserving first-seen order."""
    if not isinstance(symbols, (list, tuple)):
        raise MessageDecodeError("symbols must be an array")
    seen: dict[str, None] = {}
    for item in symbols:
        if not isinstance(item, str):
            continue
        symbol = item.strip().upper()
        if symbol:
            seen.setdefault(symbol, None)
    return tuple(seen)


def decode_client_control(raw: str | bytes | dict) -> ClientControl:
    """Decode a downstream control frame. Raises MessageDecodeError."""
    data = raw if isinstance(raw, dict) else _loads(raw)
    if not isinstance(data, dict):
        raise MessageDecodeError("control frame must be an object")
    action = data.get("action")
    if action not in CLIENT_ACTIONS:
        raise MessageDecodeError(f"unknown action {action!r}")
    return ClientControl(action=action, symbols=normalize_symbols(data.get("symbols")))
