"""Real-time quote relay.

Public API:
    Quote                - Immutable normalized tick
    PriceCache           - Thread-safe latest-price store
    UpstreamLink         - Single reconnecting connection to the quote provider
    SubscriptionRegistry - Reference-counted global want-set
    UpdateBatcher        - Fixed-cadence batched price persistence
    ClientHub            - Downstream clients and per-symbol fan-out
    QuoteRelay           - Owns and wires all of the above
    PriceStore           - Persistence interface (SqlitePriceStore implements it)
    create_upstream_link - Factory that selects Alpaca or the simulator
    create_stream_router - FastAPI router factory for the quote WebSocket
    create_quotes_router - FastAPI router factory for price/status REST
"""

from .api import create_quotes_router
from .batcher import UpdateBatcher
from .cache import PriceCache
from .factory import create_upstream_link
from .hub import ClientHub
from .models import Quote
from .registry import SubscriptionRegistry
from .relay import QuoteRelay
from .store import PriceStore, SqlitePriceStore
from .stream import create_stream_router
from .upstream import UpstreamLink

__all__ = [
    "Quote",
    "PriceCache",
    "UpstreamLink",
    "SubscriptionRegistry",
    "UpdateBatcher",
    "ClientHub",
    "QuoteRelay",
    "PriceStore",
    "SqlitePriceStore",
    "create_upstream_link",
    "create_stream_router",
    "create_quotes_router",
]
