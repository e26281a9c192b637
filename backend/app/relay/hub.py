"""Downstream client registry and quote fan-out."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field

from .messages import MessageDecodeError, decode_client_control
from .models import Quote
from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ClientHandle:
    """One downstream connection: its subscriptions and its outbound queue."""

    client_id: str
    outbox: asyncio.Queue
    subscriptions: set[str] = field(default_factory=set)
    connected: bool = True
    dropped: int = 0


class ClientHub:
    """Tracks downstream clients and routes each quote to the ones that asked for it.

    on_quote() never awaits a client socket. Events go onto each interested
    client's bounded outbox and a per-connection writer drains it, so a slow
    client can only fall behind itself. When an outbox is full the event is
    dropped for that client alone.
    """

    def __init__(self, registry: SubscriptionRegistry, queue_size: int = 1000) -> None:
        self._registry = registry
        self._queue_size = queue_size
        self._clients: dict[str, ClientHandle] = {}
        self._ids = itertools.count(1)
        self._dropped = 0  # Across all clients, including disconnected ones

    def connect(self) -> ClientHandle:
        """Register a new client with an empty subscription set."""
        handle = ClientHandle(
            client_id=f"client-{next(self._ids)}",
            outbox=asyncio.Queue(maxsize=self._queue_size),
        )
        self._clients[handle.client_id] = handle
        logger.info(
            "Client connected: %s (%d total)",
            handle.client_id,
            len(self._clients),
            extra={"client": handle.client_id},
        )
        return handle

    async def handle_message(self, handle: ClientHandle, raw: str | bytes | dict) -> None:
        """Apply a subscribe/unsubscribe frame from a client.

        Malformed frames are logged and ignored; the connection stays open.
        """
        if not handle.connected:
            return
        try:
            control = decode_client_control(raw)
        except MessageDecodeError as e:
            logger.warning(
                "Ignoring control frame from %s: %s", handle.client_id, e, extra={"client": handle.client_id}
            )
            return

        if control.action == "subscribe":
            added = [s for s in control.symbols if s not in handle.subscriptions]
            handle.subscriptions.update(added)
            if added:
                await self._registry.add_interest(added)
            logger.debug("%s subscribed to %s", handle.client_id, added, extra={"client": handle.client_id})
        else:
            removed = [s for s in control.symbols if s in handle.subscriptions]
            handle.subscriptions.difference_update(removed)
            if removed:
                await self._registry.remove_interest(removed)
            logger.debug(
                "%s unsubscribed from %s", handle.client_id, removed, extra={"client": handle.client_id}
            )

    def on_quote(self, quote: Quote) -> int:
        """Queue a quote event for every client subscribed to its symbol.

        Returns the number of clients it was queued for.
        """
        event = None
        delivered = 0
        for handle in self._clients.values():
            if quote.symbol not in handle.subscriptions:
                continue
            if event is None:
                event = quote.to_event()
            try:
                handle.outbox.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                handle.dropped += 1
                self._dropped += 1
                if handle.dropped == 1 or handle.dropped % 100 == 0:
                    logger.warning(
                        "Outbox full for %s; dropped %d events so far",
                        handle.client_id,
                        handle.dropped,
                        extra={"client": handle.client_id, "symbol": quote.symbol},
                    )
        return delivered

    async def disconnect(self, handle: ClientHandle) -> None:
        """Stop dispatch to a client and release its interest upstream."""
        if not handle.connected:
            return
        # Dispatch stops here, before any await below.
        handle.connected = False
        self._clients.pop(handle.client_id, None)
        symbols = set(handle.subscriptions)
        handle.subscriptions.clear()
        logger.info(
            "Client disconnected: %s (%d remaining)",
            handle.client_id,
            len(self._clients),
            extra={"client": handle.client_id},
        )
        if symbols:
            await self._registry.remove_interest(symbols)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def dropped_events(self) -> int:
        """Events dropped on full outboxes since startup."""
        return self._dropped

    def subscriptions(self) -> dict[str, frozenset[str]]:
        """Snapshot of every connected client's subscription set."""
        return {cid: frozenset(h.subscriptions) for cid, h in self._clients.items()}
