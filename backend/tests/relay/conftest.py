"""Fixtures for relay tests."""

import pytest

from .fakes import FakeLink, RecordingStore


@pytest.fixture
def fake_link():
    return FakeLink()


@pytest.fixture
def store():
    return RecordingStore()
