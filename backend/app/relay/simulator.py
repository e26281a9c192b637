"""Simulated upstream: a GBM quote generator behind the upstream wire protocol."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from datetime import datetime, timezone

import numpy as np

from .messages import MessageDecodeError, normalize_symbols
from .seed_prices import (
    DEFAULT_PRICE_RANGE,
    DEFAULT_SIGMA,
    DRIFT,
    HALF_SPREAD_BPS,
    MAX_LOTS,
    SYMBOL_PARAMS,
)

logger = logging.getLogger(__name__)


class QuoteSimulator:
    """Geometric Brownian Motion over mid prices, quoted as bid/ask.

    Each step moves every mid by
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)
    and quotes it symmetrically around the mid with a fixed half-spread.
    dt is the tick interval as a fraction of a trading year, so moves stay
    sub-cent per tick and accumulate realistically.
    """

    TRADING_SECONDS_PER_YEAR = 252 * 6.5 * 3600

    def __init__(self, tick_seconds: float = 0.5, rng: np.random.Generator | None = None) -> None:
        self._dt = tick_seconds / self.TRADING_SECONDS_PER_YEAR
        self._rng = rng or np.random.default_rng()
        self._symbols: list[str] = []
        self._mids = np.empty(0)
        self._sigmas = np.empty(0)

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    def add_symbol(self, symbol: str) -> None:
        if symbol in self._symbols:
            return
        if symbol in SYMBOL_PARAMS:
            mid, sigma = SYMBOL_PARAMS[symbol]
        else:
            mid, sigma = float(self._rng.uniform(*DEFAULT_PRICE_RANGE)), DEFAULT_SIGMA
        self._symbols.append(symbol)
        self._mids = np.append(self._mids, mid)
        self._sigmas = np.append(self._sigmas, sigma)

    def remove_symbol(self, symbol: str) -> None:
        if symbol not in self._symbols:
            return
        i = self._symbols.index(symbol)
        self._symbols.pop(i)
        self._mids = np.delete(self._mids, i)
        self._sigmas = np.delete(self._sigmas, i)

    def step(self) -> list[dict]:
        """Advance every symbol one tick. Returns upstream-format quote records."""
        n = len(self._symbols)
        if n == 0:
            return []

        z = self._rng.standard_normal(n)
        drift = (DRIFT - 0.5 * self._sigmas**2) * self._dt
        diffusion = self._sigmas * math.sqrt(self._dt) * z
        self._mids = self._mids * np.exp(drift + diffusion)

        half_spread = self._mids * HALF_SPREAD_BPS / 10_000
        bids = np.round(self._mids - half_spread, 2)
        asks = np.maximum(np.round(self._mids + half_spread, 2), bids + 0.01)
        bid_sizes = self._rng.integers(1, MAX_LOTS + 1, n) * 100
        ask_sizes = self._rng.integers(1, MAX_LOTS + 1, n) * 100
        ts = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        return [
            {
                "T": "q",
                "S": symbol,
                "bp": float(bids[i]),
                "ap": float(asks[i]),
                "bs": int(bid_sizes[i]),
                "as": int(ask_sizes[i]),
                "t": ts,
            }
            for i, symbol in enumerate(self._symbols)
        ]


class SimulatedUpstream:
    """In-process stand-in for the upstream socket.

    Speaks the same protocol as the real stream: greets on connect,
    acknowledges any auth, tracks subscribe/unsubscribe frames and emits a
    frame of quote records for the subscribed symbols every tick. Used as
    an UpstreamLink connector result when no provider credentials are set.
    """

    def __init__(self, tick_seconds: float = 0.5, simulator: QuoteSimulator | None = None) -> None:
        self._tick = tick_seconds
        self._sim = simulator or QuoteSimulator(tick_seconds=tick_seconds)
        self._inbox: asyncio.Queue[str] = asyncio.Queue()
        self._authenticated = False
        self._closed = False

    async def __aenter__(self) -> SimulatedUpstream:
        self._reply([{"T": "success", "msg": "connected"}])
        logger.info("Simulated upstream opened (%.2fs ticks)", self._tick)
        return self

    async def __aexit__(self, *exc_info) -> None:
        self._closed = True

    def __aiter__(self) -> SimulatedUpstream:
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await asyncio.wait_for(self._inbox.get(), timeout=self._tick)
        except asyncio.TimeoutError:
            pass
        if self._closed:
            raise StopAsyncIteration
        if not self._authenticated:
            return json.dumps([])
        return json.dumps(self._sim.step())

    async def send(self, raw: str) -> None:
        if self._closed:
            raise ConnectionError("simulated upstream is closed")
        try:
            message = json.loads(raw)
            action = message.get("action")
        except (ValueError, AttributeError):
            self._reply([{"T": "error", "code": 400, "msg": "invalid syntax"}])
            return

        if action == "auth":
            self._authenticated = True
            self._reply([{"T": "success", "msg": "authenticated"}])
            return
        if not self._authenticated:
            self._reply([{"T": "error", "code": 401, "msg": "not authenticated"}])
            return

        try:
            symbols = normalize_symbols(message.get("quotes"))
        except MessageDecodeError:
            self._reply([{"T": "error", "code": 400, "msg": "invalid syntax"}])
            return
        if action == "subscribe":
            for symbol in symbols:
                self._sim.add_symbol(symbol)
        elif action == "unsubscribe":
            for symbol in symbols:
                self._sim.remove_symbol(symbol)
        else:
            self._reply([{"T": "error", "code": 400, "msg": "invalid syntax"}])
            return
        self._reply([{"T": "subscription", "trades": [], "quotes": self._sim.symbols, "bars": []}])

    async def close(self) -> None:
        self._closed = True

    def _reply(self, records: list[dict]) -> None:
        self._inbox.put_nowait(json.dumps(records))


def simulated_connector(tick_seconds: float = 0.5):
    """Connector for UpstreamLink that opens a fresh SimulatedUpstream per attempt."""

    def connect(_url: str) -> SimulatedUpstream:
        return SimulatedUpstream(tick_seconds=tick_seconds)

    return connect
