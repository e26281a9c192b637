"""Batched, fixed-cadence persistence of price updates."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from .models import PriceWrite
from .store import PriceStore

logger = logging.getLogger(__name__)


class UpdateBatcher:
    """Collapses ticks into one persisted write per symbol per flush window.

    enqueue() only records the latest price in memory. A background task
    flushes every ``interval`` seconds whether or not ticks keep arriving,
    so sustained tick volume cannot postpone persistence indefinitely.

    A failed flush is logged and its batch dropped. The next tick for each
    symbol re-enqueues the current price, and PriceCache holds the live
    value regardless.
    """

    def __init__(self, store: PriceStore, interval: float = 5.0) -> None:
        self._store = store
        self._interval = interval
        self._pending: dict[str, float] = {}
        self._task: asyncio.Task | None = None
        self.flushes = 0
        self.failed_flushes = 0
        self.written = 0

    def enqueue(self, symbol: str, price: float) -> None:
        """Record the symbol's latest price; last write before a flush wins."""
        self._pending[symbol] = price

    @property
    def pending(self) -> dict[str, float]:
        return dict(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    async def flush(self) -> int:
        """Persist and clear all pending prices. Returns the number of writes sent."""
        if not self._pending:
            return 0

        # Swap before awaiting so ticks arriving mid-write land in the next batch.
        batch, self._pending = self._pending, {}
        now = datetime.now(timezone.utc)
        writes = [PriceWrite(symbol=s, current_price=p, last_updated=now) for s, p in batch.items()]

        try:
            await self._store.bulk_update(writes)
        except Exception:
            self.failed_flushes += 1
            logger.exception("Price flush failed; dropping %d updates", len(writes))
            return 0

        self.flushes += 1
        self.written += len(writes)
        logger.debug("Flushed %d price updates", len(writes))
        return len(writes)

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run_loop(), name="price-flush")
        logger.info("Update batcher started: %.1fs flush interval", self._interval)

    async def stop(self) -> None:
        """Cancel the flush timer, then flush whatever is still pending."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        await self.flush()
        logger.info("Update batcher stopped")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.flush()
