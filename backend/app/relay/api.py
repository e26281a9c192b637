"""REST endpoints over the relay: current prices and health."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from .relay import QuoteRelay


def create_quotes_router(relay: QuoteRelay) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["quotes"])

    @router.get("/quotes/{symbol}")
    async def get_quote(symbol: str) -> dict:
        """Latest cached price for a symbol. 404 until it has ticked at least once."""
        entry = relay.cache.get_entry(symbol.strip().upper())
        if entry is None:
            raise HTTPException(status_code=404, detail=f"No price for {symbol.upper()}")
        return entry.to_dict()

    @router.get("/relay/status")
    async def relay_status() -> dict:
        return relay.status()

    return router
