"""WebSocket endpoint for live quote streaming to browser clients."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .hub import ClientHandle, ClientHub

logger = logging.getLogger(__name__)


def create_stream_router(hub: ClientHub) -> APIRouter:
    """Create the quote stream router bound to a ClientHub.

    This factory pattern lets us inject the hub without globals.
    """
    router = APIRouter(tags=["streaming"])

    @router.websocket("/ws/quotes")
    async def stream_quotes(websocket: WebSocket) -> None:
        """Live quotes for the symbols a client subscribes to.

        Clients send control frames:

            {"action": "subscribe", "symbols": ["AAPL", "MSFT"]}
            {"action": "unsubscribe", "symbols": ["MSFT"]}

        as text or binary frames, and receive one event per tick for each subscribed symbol:

            {"type": "quote", "symbol": "AAPL", "price": 191.23, "bid": 191.2, ...}
        """
        await websocket.accept()
        handle = hub.connect()
        writer = asyncio.create_task(
            _forward_events(websocket, handle), name=f"writer-{handle.client_id}"
        )
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text") or message.get("bytes")
                if not raw:
                    continue
                await hub.handle_message(handle, raw)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception(
                "Stream receive failed for %s", handle.client_id, extra={"client": handle.client_id}
            )
        finally:
            await hub.disconnect(handle)
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass

    return router


async def _forward_events(websocket: WebSocket, handle: ClientHandle) -> None:
    """Drain a client's outbox onto its socket until the socket goes away."""
    while handle.connected:
        event = await handle.outbox.get()
        if not handle.connected:
            break
        try:
            await websocket.send_json(event)
        except (WebSocketDisconnect, RuntimeError):
            # RuntimeError: send after close
            logger.debug(
                "Socket gone for %s; writer exiting", handle.client_id, extra={"client": handle.client_id}
            )
            break
