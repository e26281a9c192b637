"""Thread-safe in-memory price cache."""

from __future__ import annotations

import time
from threading import Lock

from .models import PriceCacheEntry


class PriceCache:
    """Latest known price for every symbol the relay has seen.

    Writer: QuoteRelay, on every upstream tick.
    Readers: REST price lookups, relay status, anything valuing holdings.

    Entries are overwritten in arrival order and never removed. A late,
    out-of-order tick can replace a newer price; upstream delivers ticks
    per symbol in order, so this is accepted rather than corrected.
    """

    def __init__(self) -> None:
        self._entries: dict[str, PriceCacheEntry] = {}
        self._lock = Lock()

    def set(self, symbol: str, price: float, updated_at: float | None = None) -> PriceCacheEntry:
        """Unconditionally record the latest price for a symbol."""
        entry = PriceCacheEntry(
            symbol=symbol,
            price=price,
            updated_at=updated_at if updated_at is not None else time.time(),
        )
        with self._lock:
            self._entries[symbol] = entry
        return entry

    def get(self, symbol: str) -> float | None:
        """Latest price for a symbol, or None if it has never ticked."""
        entry = self.get_entry(symbol)
        return entry.price if entry else None

    def get_entry(self, symbol: str) -> PriceCacheEntry | None:
        with self._lock:
            return self._entries.get(symbol)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
