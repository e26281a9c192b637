"""Tests for ClientHub."""

import logging

import pytest

from app.relay.hub import ClientHub
from app.relay.models import Quote
from app.relay.registry import SubscriptionRegistry


def _drain(handle) -> list[dict]:
    events = []
    while not handle.outbox.empty():
        events.append(handle.outbox.get_nowait())
    return events


def _quote(symbol: str, price: float, bid: float = 0.0, ask: float = 0.0) -> Quote:
    return Quote(symbol=symbol, price=price, bid=bid, ask=ask, bid_size=100, ask_size=200, timestamp="t1")


@pytest.fixture
def registry(fake_link):
    return SubscriptionRegistry(fake_link)


@pytest.fixture
def hub(registry):
    return ClientHub(registry)


@pytest.mark.asyncio
class TestClientHub:
    """Unit tests for client lifecycle and fan-out."""

    async def test_connect_starts_empty(self, hub):
        handle = hub.connect()
        assert handle.subscriptions == set()
        assert handle.connected
        assert hub.client_count == 1

    async def test_client_ids_are_unique(self, hub):
        assert hub.connect().client_id != hub.connect().client_id

    async def test_quote_reaches_only_subscribers(self, hub):
        """Test an AAPL tick goes to the AAPL client and nowhere else."""
        aapl = hub.connect()
        msft = hub.connect()
        await hub.handle_message(aapl, '{"action": "subscribe", "symbols": ["AAPL"]}')
        await hub.handle_message(msft, '{"action": "subscribe", "symbols": ["MSFT"]}')

        delivered = hub.on_quote(_quote("AAPL", 191.23, bid=191.20, ask=191.25))

        assert delivered == 1
        assert _drain(aapl) == [
            {
                "type": "quote",
                "symbol": "AAPL",
                "price": 191.23,
                "bid": 191.20,
                "ask": 191.25,
                "bidSize": 100,
                "askSize": 200,
                "timestamp": "t1",
            }
        ]
        assert _drain(msft) == []

    async def test_events_keep_upstream_order(self, hub):
        handle = hub.connect()
        await hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL", "MSFT"]})
        for price in (1.0, 2.0, 3.0):
            hub.on_quote(_quote("AAPL", price))
            hub.on_quote(_quote("MSFT", price * 10))

        events = _drain(handle)
        assert [(e["symbol"], e["price"]) for e in events] == [
            ("AAPL", 1.0),
            ("MSFT", 10.0),
            ("AAPL", 2.0),
            ("MSFT", 20.0),
            ("AAPL", 3.0),
            ("MSFT", 30.0),
        ]

    async def test_shared_symbol_subscribes_upstream_once(self, hub, fake_link):
        """Test two clients wanting AAPL produce a single upstream subscribe for it."""
        c1 = hub.connect()
        c2 = hub.connect()
        await hub.handle_message(c1, {"action": "subscribe", "symbols": ["AAPL"]})
        await hub.handle_message(c2, {"action": "subscribe", "symbols": ["AAPL", "MSFT"]})

        assert fake_link.sent == [
            {"action": "subscribe", "quotes": ["AAPL"]},
            {"action": "subscribe", "quotes": ["MSFT"]},
        ]

        await hub.disconnect(c1)
        assert len(fake_link.sent) == 2  # C2 still covers AAPL

        await hub.disconnect(c2)
        assert fake_link.sent[-1] == {"action": "unsubscribe", "quotes": ["AAPL", "MSFT"]}

    async def test_resubscribe_same_symbol_is_noop(self, hub, registry, fake_link):
        handle = hub.connect()
        await hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL"]})
        await hub.handle_message(handle, {"action": "subscribe", "symbols": ["aapl"]})
        assert fake_link.sent == [{"action": "subscribe", "quotes": ["AAPL"]}]

        # Counted once, so one unsubscribe releases it
        await hub.handle_message(handle, {"action": "unsubscribe", "symbols": ["AAPL"]})
        assert registry.want_set == frozenset()
        assert fake_link.sent[-1] == {"action": "unsubscribe", "quotes": ["AAPL"]}

    async def test_unsubscribe(self, hub, fake_link):
        handle = hub.connect()
        await hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL", "MSFT"]})
        await hub.handle_message(handle, {"action": "unsubscribe", "symbols": ["MSFT", "TSLA"]})

        assert handle.subscriptions == {"AAPL"}
        assert fake_link.sent[-1] == {"action": "unsubscribe", "quotes": ["MSFT"]}
        hub.on_quote(_quote("MSFT", 415.0))
        assert _drain(handle) == []

    async def test_malformed_frames_are_ignored(self, hub, fake_link):
        """Test bad frames leave the client connected and unchanged."""
        handle = hub.connect()
        await hub.handle_message(handle, "not json")
        await hub.handle_message(handle, {"action": "snapshot", "symbols": ["AAPL"]})
        await hub.handle_message(handle, {"action": "subscribe", "symbols": "AAPL"})

        assert handle.connected
        assert handle.subscriptions == set()
        assert fake_link.sent == []

    async def test_disconnect_stops_dispatch(self, hub):
        """Test a disconnected client receives nothing further."""
        handle = hub.connect()
        await hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL"]})
        await hub.disconnect(handle)

        assert hub.on_quote(_quote("AAPL", 191.0)) == 0
        assert _drain(handle) == []
        assert not handle.connected
        assert hub.client_count == 0

    async def test_disconnect_releases_interest(self, hub, registry, fake_link):
        handle = hub.connect()
        await hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL", "MSFT"]})
        await hub.disconnect(handle)

        assert registry.want_set == frozenset()
        assert fake_link.sent[-1] == {"action": "unsubscribe", "quotes": ["AAPL", "MSFT"]}

    async def test_disconnect_twice_is_safe(self, hub, fake_link):
        handle = hub.connect()
        await hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL"]})
        await hub.disconnect(handle)
        await hub.disconnect(handle)
        assert [m["action"] for m in fake_link.sent] == ["subscribe", "unsubscribe"]

    async def test_messages_after_disconnect_are_ignored(self, hub, fake_link):
        handle = hub.connect()
        await hub.disconnect(handle)
        await hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL"]})
        assert fake_link.sent == []

    async def test_full_outbox_drops_for_that_client_only(self, registry):
        """Test a backed-up client loses events without affecting others."""
        hub = ClientHub(registry, queue_size=2)
        slow = hub.connect()
        fast = hub.connect()
        for handle in (slow, fast):
            await hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL"]})

        for price in (1.0, 2.0, 3.0):
            hub.on_quote(_quote("AAPL", price))
            _drain(fast)

        assert [e["price"] for e in _drain(slow)] == [1.0, 2.0]
        assert slow.dropped == 1
        assert fast.dropped == 0
        assert hub.dropped_events == 1

    async def test_subscriptions_snapshot(self, hub):
        handle = hub.connect()
        await hub.handle_message(handle, {"action": "subscribe", "symbols": ["AAPL"]})
        assert hub.subscriptions() == {handle.client_id: frozenset({"AAPL"})}

    async def test_dropped_events_survive_disconnect(self, registry):
        """Test the drop count is cumulative and never shrinks when a client leaves."""
        hub = ClientHub(registry, queue_size=1)
        slow = hub.connect()
        await hub.handle_message(slow, {"action": "subscribe", "symbols": ["AAPL"]})
        for price in (1.0, 2.0, 3.0):
            hub.on_quote(_quote("AAPL", price))
        assert hub.dropped_events == 2

        await hub.disconnect(slow)
        assert hub.dropped_events == 2

        other = hub.connect()
        await hub.handle_message(other, {"action": "subscribe", "symbols": ["AAPL"]})
        hub.on_quote(_quote("AAPL", 4.0))
        hub.on_quote(_quote("AAPL", 5.0))
        assert hub.dropped_events == 3

    async def test_log_records_carry_client_context(self, hub, caplog):
        caplog.set_level(logging.WARNING, logger="app.relay.hub")
        handle = hub.connect()
        await hub.handle_message(handle, "not json")

        (record,) = [r for r in caplog.records if r.name == "app.relay.hub"]
        assert record.client == handle.client_id
