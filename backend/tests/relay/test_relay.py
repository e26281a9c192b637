"""End-to-end tests for QuoteRelay over a scripted upstream."""

import pytest

from app.relay.relay import QuoteRelay
from app.relay.upstream import UpstreamLink

from .fakes import AUTHENTICATED, CLOSE, CONNECTED, FakeConnector, FakeSocket, quote_record, wait_until


def _drain(handle) -> list[dict]:
    events = []
    while not handle.outbox.empty():
        events.append(handle.outbox.get_nowait())
    return events


def _make_relay(connector, store, **kwargs) -> QuoteRelay:
    link = UpstreamLink("wss://example.test", "k", "s", reconnect_delay=0.01, connector=connector)
    return QuoteRelay(link, store, **kwargs)


@pytest.mark.asyncio
class TestQuoteRelay:
    """Ticks flowing from upstream to cache, batcher and clients."""

    async def test_tick_reaches_cache_and_subscriber_only(self, store):
        """Test an AAPL tick updates the cache and only the AAPL client's stream."""
        socket = FakeSocket([CONNECTED, AUTHENTICATED])
        relay = _make_relay(FakeConnector(socket), store)
        aapl = relay.hub.connect()
        msft = relay.hub.connect()

        await relay.start()
        try:
            await wait_until(lambda: relay.link.ready)
            await relay.hub.handle_message(aapl, {"action": "subscribe", "symbols": ["AAPL"]})
            await relay.hub.handle_message(msft, {"action": "subscribe", "symbols": ["MSFT"]})

            socket.push([quote_record("AAPL", 191.20, 191.25, p=191.23)])
            await wait_until(lambda: relay.price("AAPL") is not None)

            assert relay.price("AAPL") == 191.23
            assert relay.price("aapl") == 191.23
            (event,) = _drain(aapl)
            assert event["symbol"] == "AAPL"
            assert event["price"] == 191.23
            assert event["bid"] == 191.20
            assert event["ask"] == 191.25
            assert _drain(msft) == []
        finally:
            await relay.stop()

    async def test_subscriptions_made_before_ready_are_replayed(self, store):
        """Test clients that subscribe before authentication are covered once the link is ready."""
        socket = FakeSocket([CONNECTED])
        relay = _make_relay(FakeConnector(socket), store)
        handle = relay.hub.connect()
        await relay.hub.handle_message(handle, {"action": "subscribe", "symbols": ["MSFT", "AAPL"]})

        await relay.start()
        try:
            await wait_until(lambda: socket.sent)
            socket.push(AUTHENTICATED)
            await wait_until(lambda: len(socket.sent) == 2)
            assert socket.sent[1] == {"action": "subscribe", "quotes": ["AAPL", "MSFT"]}
        finally:
            await relay.stop()

    async def test_full_want_set_resent_after_reconnect(self, store):
        """Test the whole want-set, not a delta, is sent again after reconnecting."""
        first = FakeSocket([AUTHENTICATED])
        second = FakeSocket()
        relay = _make_relay(FakeConnector(first, second), store)
        c1 = relay.hub.connect()
        c2 = relay.hub.connect()

        await relay.start()
        try:
            await wait_until(lambda: relay.link.ready)
            await relay.hub.handle_message(c1, {"action": "subscribe", "symbols": ["AAPL"]})
            await relay.hub.handle_message(c2, {"action": "subscribe", "symbols": ["TSLA"]})
            assert first.sent[1:] == [
                {"action": "subscribe", "quotes": ["AAPL"]},
                {"action": "subscribe", "quotes": ["TSLA"]},
            ]

            first.close()
            await wait_until(lambda: second.sent)
            # Interest changes while the link is down are absorbed by the replay.
            await relay.hub.handle_message(c2, {"action": "subscribe", "symbols": ["NVDA"]})
            second.push(AUTHENTICATED)
            await wait_until(lambda: len(second.sent) == 2)

            assert second.sent[1] == {"action": "subscribe", "quotes": ["AAPL", "NVDA", "TSLA"]}
        finally:
            await relay.stop()

    async def test_burst_persists_once_per_symbol(self, store):
        """Test 50 ticks in one flush window produce one write carrying the 50th price."""
        socket = FakeSocket([AUTHENTICATED])
        relay = _make_relay(FakeConnector(socket), store, flush_interval=60.0)
        await relay.start()
        try:
            await wait_until(lambda: relay.link.ready)
            prices = [round(240.0 + i * 0.01, 2) for i in range(1, 51)]
            socket.push([quote_record("TSLA", p, p + 0.05) for p in prices])
            await wait_until(lambda: relay.link.quotes_received == 50)
            assert relay.price("TSLA") == prices[-1]
        finally:
            await relay.stop()

        assert len(store.batches) == 1
        (write,) = store.writes
        assert write.symbol == "TSLA"
        assert write.current_price == prices[-1]

    async def test_upstream_outage_keeps_cache(self, store):
        socket = FakeSocket([AUTHENTICATED, [quote_record("AAPL", 190.0, 190.1)], CLOSE])
        relay = _make_relay(FakeConnector(socket), store)
        await relay.start()
        try:
            await wait_until(lambda: relay.link.reconnect_count >= 1)
            assert relay.price("AAPL") == 190.0
        finally:
            await relay.stop()

    async def test_status(self, store):
        socket = FakeSocket([AUTHENTICATED])
        relay = _make_relay(FakeConnector(socket), store, flush_interval=60.0)
        handle = relay.hub.connect()
        await relay.start()
        try:
            await wait_until(lambda: relay.link.ready)
            await relay.hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL"]})
            socket.push([quote_record("AAPL", 190.0, 190.1)])
            await wait_until(lambda: relay.price("AAPL") is not None)

            status = relay.status()
            assert status["upstream"]["state"] == "ready"
            assert status["upstream"]["quotes_received"] == 1
            assert status["want_set"] == ["AAPL"]
            assert status["clients"] == 1
            assert status["subscriptions"] == {handle.client_id: ["AAPL"]}
            assert status["cached_symbols"] == 1
            assert status["pending_updates"] == 1
            assert status["flushes"] == 0
        finally:
            await relay.stop()
