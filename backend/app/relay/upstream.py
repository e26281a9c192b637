"""Persistent connection to the upstream quote stream."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import websockets

from .messages import (
    ErrorRecord,
    MalformedRecord,
    MessageDecodeError,
    QuoteRecord,
    StatusRecord,
    SubscriptionAck,
    UnknownRecord,
    auth_message,
    decode_frame,
)
from .models import Quote

logger = logging.getLogger(__name__)

QuoteListener = Callable[[Quote], None]
ReadyListener = Callable[[], Awaitable[None]]
Connector = Callable[[str], Any]  # url -> async context manager yielding a socket


class LinkState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"


def websocket_connector(url: str) -> Any:
    """Open the upstream socket with the ``websockets`` client."""
    return websockets.connect(
        url,
        ping_interval=20,
        ping_timeout=20,
        close_timeout=5,
        max_queue=None,
    )


class UpstreamLink:
    """Owns the single live connection to the market-data provider.

    State machine:
        DISCONNECTED -> CONNECTING -> AUTHENTICATING -> READY -> DISCONNECTED

    Any transport error or close, from any state, drops back to
    DISCONNECTED and schedules another attempt after ``reconnect_delay``
    seconds. The delay is fixed. ``max_attempts`` caps consecutive failed
    attempts (reset whenever the link reaches READY); None or 0 retries
    forever. The want-set lives in SubscriptionRegistry, which a ready
    listener replays after every successful authentication.

    Lifecycle:
        link = UpstreamLink(url, key, secret)
        link.add_quote_listener(on_quote)
        link.add_ready_listener(registry.replay)
        await link.start()
        ...
        await link.stop()
    """

    def __init__(
        self,
        url: str,
        key: str,
        secret: str,
        *,
        reconnect_delay: float = 5.0,
        max_attempts: int | None = None,
        connector: Connector | None = None,
    ) -> None:
        self._url = url
        self._key = key
        self._secret = secret
        self._reconnect_delay = reconnect_delay
        self._max_attempts = max_attempts or None
        self._connector = connector or websocket_connector
        self._socket: Any = None
        self._state = LinkState.DISCONNECTED
        self._task: asyncio.Task | None = None
        self._quote_listeners: list[QuoteListener] = []
        self._ready_listeners: list[ReadyListener] = []
        self._failures = 0
        self.reconnect_count = 0
        self.last_error: str | None = None
        self.quotes_received = 0

    # --- Public API ---

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is LinkState.READY

    @property
    def url(self) -> str:
        return self._url

    def add_quote_listener(self, listener: QuoteListener) -> None:
        self._quote_listeners.append(listener)

    def add_ready_listener(self, listener: ReadyListener) -> None:
        self._ready_listeners.append(listener)

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="upstream-link")
        logger.info("Upstream link started: %s", self._url)

    async def stop(self) -> None:
        """Cancel the connection task. Safe to call multiple times."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._socket = None
        self._state = LinkState.DISCONNECTED
        logger.info("Upstream link stopped")

    async def send(self, message: dict) -> bool:
        """Send a control frame if the link is ready. Returns whether it was sent.

        A no-op while disconnected or authenticating; callers must not
        assume delivery.
        """
        if not self.ready or self._socket is None:
            return False
        return await self._send_raw(message)

    async def handle_raw(self, raw: str | bytes) -> None:
        """Decode one upstream frame and dispatch each record in order."""
        try:
            records = decode_frame(raw)
        except MessageDecodeError as e:
            logger.warning("Dropping upstream frame: %s", e)
            return

        for record in records:
            if isinstance(record, QuoteRecord):
                self.quotes_received += 1
                self._emit_quote(record.quote)
            elif isinstance(record, StatusRecord):
                if record.is_authenticated:
                    await self._on_authenticated()
                else:
                    logger.info("Upstream status: %s", record.message)
            elif isinstance(record, SubscriptionAck):
                logger.debug("Upstream subscriptions now: %s", list(record.quotes))
            elif isinstance(record, ErrorRecord):
                self.last_error = f"[{record.code}] {record.message}"
                if record.code in (401, 402, 403, 404):
                    logger.error("Upstream rejected credentials: [%s] %s", record.code, record.message)
                else:
                    logger.warning("Upstream error: [%s] %s", record.code, record.message)
            elif isinstance(record, MalformedRecord):
                logger.warning("Skipping upstream record: %s", record.reason)
            elif isinstance(record, UnknownRecord):
                logger.debug("Ignoring upstream record tagged %r", record.tag)

    # --- Internal ---

    async def _run(self) -> None:
        while True:
            try:
                await self._connect_once()
                logger.warning("Upstream connection closed")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.last_error = str(e) or type(e).__name__
                logger.warning("Upstream connection failed: %s", self.last_error)
            finally:
                self._socket = None
                self._state = LinkState.DISCONNECTED

            self._failures += 1
            if self._max_attempts is not None and self._failures >= self._max_attempts:
                logger.error(
                    "Upstream link giving up after %d consecutive failed attempts",
                    self._failures,
                )
                return

            self.reconnect_count += 1
            logger.info("Reconnecting to upstream in %.1fs", self._reconnect_delay)
            await asyncio.sleep(self._reconnect_delay)

    async def _connect_once(self) -> None:
        self._state = LinkState.CONNECTING
        async with self._connector(self._url) as socket:
            self._socket = socket
            self._state = LinkState.AUTHENTICATING
            logger.info("Connected to upstream; authenticating")
            await self._send_raw(auth_message(self._key, self._secret))
            async for raw in socket:
                await self.handle_raw(raw)

    async def _send_raw(self, message: dict) -> bool:
        socket = self._socket
        if socket is None:
            return False
        try:
            await socket.send(json.dumps(message))
        except Exception as e:
            # The read loop sees the same failure and drives the reconnect.
            logger.warning("Upstream send failed (%s): %s", message.get("action"), e)
            return False
        return True

    async def _on_authenticated(self) -> None:
        self._state = LinkState.READY
        self._failures = 0
        self.last_error = None
        logger.info("Upstream authenticated")
        for listener in self._ready_listeners:
            try:
                await listener()
            except Exception:
                logger.exception("Upstream ready listener failed")

    def _emit_quote(self, quote: Quote) -> None:
        for listener in self._quote_listeners:
            try:
                listener(quote)
            except Exception:
                logger.exception("Quote listener failed for %s", quote.symbol)
