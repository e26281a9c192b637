"""Data models for the quote relay."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Quote:
    """One normalized tick for one symbol, as received from upstream."""

    symbol: str
    price: float
    bid: float = 0.0
    ask: float = 0.0
    bid_size: int = 0
    ask_size: int = 0
    timestamp: str = ""  # Exchange timestamp, passed through untouched

    def to_event(self) -> dict:
        """Serialize as the downstream ``quote`` event frame."""
        return {
            "type": "quote",
            "symbol": self.symbol,
            "price": self.price,
            "bid": self.bid,
            "ask": self.ask,
            "bidSize": self.bid_size,
            "askSize": self.ask_size,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class PriceCacheEntry:
    """Latest known price for a symbol."""

    symbol: str
    price: float
    updated_at: float = field(default_factory=time.time)  # Unix seconds

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True, slots=True)
class PriceWrite:
    """One row of a bulk price write handed to the persistence layer."""

    symbol: str
    current_price: float
    last_updated: datetime
