"""Pytest configuration and fixtures."""

import asyncio

import pytest

from app.config import get_settings


@pytest.fixture
def event_loop_policy():
    """Use the default event loop policy for all async tests."""
    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached per process; never leak one test's env into the next."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
