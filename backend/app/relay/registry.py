"""Global symbol want-set and upstream subscription control."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from typing import Protocol

from .messages import subscribe_message, unsubscribe_message

logger = logging.getLogger(__name__)


class ControlChannel(Protocol):
    """The slice of UpstreamLink the registry needs."""

    @property
    def ready(self) -> bool: ...

    async def send(self, message: dict) -> bool: ...


class SubscriptionRegistry:
    """Single authority for which symbols anyone downstream wants.

    Each symbol carries a count of the clients interested in it. Only
    symbols crossing 0 <-> 1 are sent upstream, so a symbol is subscribed
    exactly while at least one client wants it and shared interest never
    produces duplicate subscribes.

    Deltas are sent only while the link is ready. Anything that changes
    while it is down is covered by replay(), which pushes the whole
    want-set once the link re-authenticates (upstream forgets
    subscriptions across connections).
    """

    def __init__(self, link: ControlChannel) -> None:
        self._link = link
        self._counts: Counter[str] = Counter()

    @property
    def want_set(self) -> frozenset[str]:
        return frozenset(self._counts)

    async def add_interest(self, symbols: Iterable[str]) -> list[str]:
        """Register one more interested client per symbol. Returns the newly wanted symbols."""
        added: list[str] = []
        for symbol in set(symbols):
            self._counts[symbol] += 1
            if self._counts[symbol] == 1:
                added.append(symbol)
        added.sort()
        if added:
            await self._push(subscribe_message(added), "subscribe", added)
        return added

    async def remove_interest(self, symbols: Iterable[str]) -> list[str]:
        """Drop one interested client per symbol. Returns the symbols nobody wants anymore."""
        removed: list[str] = []
        for symbol in set(symbols):
            count = self._counts.get(symbol, 0)
            if count <= 0:
                continue
            if count == 1:
                del self._counts[symbol]
                removed.append(symbol)
            else:
                self._counts[symbol] = count - 1
        removed.sort()
        if removed:
            await self._push(unsubscribe_message(removed), "unsubscribe", removed)
        return removed

    async def replay(self) -> None:
        """Send the full want-set as one subscribe. Called when the link becomes ready."""
        symbols = sorted(self._counts)
        if not symbols:
            logger.info("Upstream ready; no symbols wanted yet")
            return
        await self._push(subscribe_message(symbols), "replay", symbols)

    async def _push(self, message: dict, label: str, symbols: list[str]) -> None:
        if not self._link.ready:
            logger.debug("Upstream not ready; deferring %s of %s", label, symbols)
            return
        if await self._link.send(message):
            logger.info("Upstream %s: %s", label, ", ".join(symbols))
