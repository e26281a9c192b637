"""Factory for the upstream link."""

from __future__ import annotations

import logging

from ..config import Settings
from .upstream import UpstreamLink, websocket_connector

logger = logging.getLogger(__name__)


def create_upstream_link(settings: Settings) -> UpstreamLink:
    """Create an unstarted UpstreamLink for the configured quote source.

    - ALPACA_API_KEY set and non-empty -> Alpaca stream over websockets
    - Otherwise -> in-process GBM simulator speaking the same protocol

    Caller must await link.start().
    """
    if settings.use_simulator:
        from .simulator import simulated_connector

        logger.info("Upstream quote source: GBM simulator")
        connector = simulated_connector(tick_seconds=settings.SIMULATOR_TICK_SEC)
        url = "simulator://quotes"
    else:
        logger.info("Upstream quote source: Alpaca stream (%s)", settings.ALPACA_WSS_URL)
        connector = websocket_connector
        url = settings.ALPACA_WSS_URL

    return UpstreamLink(
        url,
        settings.ALPACA_API_KEY,
        settings.ALPACA_SECRET_KEY,
        reconnect_delay=settings.RECONNECT_DELAY_SEC,
        max_attempts=settings.RECONNECT_MAX_ATTEMPTS or None,
        connector=connector,
    )
