"""Wiring of the quote relay components."""

from __future__ import annotations

import logging

from .batcher import UpdateBatcher
from .cache import PriceCache
from .hub import ClientHub
from .models import Quote
from .registry import SubscriptionRegistry
from .store import PriceStore
from .upstream import UpstreamLink

logger = logging.getLogger(__name__)


class QuoteRelay:
    """Owns the relay's shared state and connects the pieces.

    Every tick from the link goes, in order, to the PriceCache, the
    UpdateBatcher and the ClientHub. The registry replays the want-set
    each time the link becomes ready.
    """

    def __init__(
        self,
        link: UpstreamLink,
        store: PriceStore,
        *,
        flush_interval: float = 5.0,
        client_queue_size: int = 1000,
        cache: PriceCache | None = None,
    ) -> None:
        self.link = link
        self.cache = cache or PriceCache()
        self.batcher = UpdateBatcher(store, interval=flush_interval)
        self.registry = SubscriptionRegistry(link)
        self.hub = ClientHub(self.registry, queue_size=client_queue_size)

        link.add_quote_listener(self.on_quote)
        link.add_ready_listener(self.registry.replay)

    def on_quote(self, quote: Quote) -> None:
        self.cache.set(quote.symbol, quote.price)
        self.batcher.enqueue(quote.symbol, quote.price)
        self.hub.on_quote(quote)

    def price(self, symbol: str) -> float | None:
        """Current price for a symbol, or None if it has never ticked."""
        return self.cache.get(symbol.strip().upper())

    async def start(self) -> None:
        await self.batcher.start()
        await self.link.start()
        logger.info("Quote relay started")

    async def stop(self) -> None:
        await self.link.stop()
        await self.batcher.stop()
        logger.info("Quote relay stopped")

    def status(self) -> dict:
        return {
            "upstream": {
                "url": self.link.url,
                "state": self.link.state.value,
                "reconnect_count": self.link.reconnect_count,
                "last_error": self.link.last_error,
                "quotes_received": self.link.quotes_received,
            },
            "want_set": sorted(self.registry.want_set),
            "clients": self.hub.client_count,
            "subscriptions": {cid: sorted(s) for cid, s in self.hub.subscriptions().items()},
            "dropped_events": self.hub.dropped_events,
            "cached_symbols": len(self.cache),
            "pending_updates": len(self.batcher),
            "flushes": self.batcher.flushes,
            "failed_flushes": self.batcher.failed_flushes,
        }
