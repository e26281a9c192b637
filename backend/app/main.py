"""FastAPI application for the portfolio backend's live quote relay."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import Settings, get_settings
from .logging_setup import configure_logging
from .relay import (
    QuoteRelay,
    SqlitePriceStore,
    create_quotes_router,
    create_stream_router,
    create_upstream_link,
)


def create_app(settings: Settings | None = None, relay: QuoteRelay | None = None) -> FastAPI:
    """Build the app. The relay is created here so routers can bind to it,
    and started/stopped by the lifespan."""
    settings = settings or get_settings()
    if relay is None:
        relay = QuoteRelay(
            create_upstream_link(settings),
            SqlitePriceStore(settings.PORTFOLIO_DB_PATH),
            flush_interval=settings.FLUSH_INTERVAL_SEC,
            client_queue_size=settings.CLIENT_QUEUE_SIZE,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
        await relay.start()
        try:
            yield
        finally:
            await relay.stop()

    app = FastAPI(title="Portfolio Quote Relay", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.relay = relay
    app.include_router(create_stream_router(relay.hub))
    app.include_router(create_quotes_router(relay))
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
