"""Shared fixtures."""

from __future__ import annotations

import pytest

from retasks.engine import TaskProvider

from .fakes import FakeAdapter, FakeClock, InMemoryStore


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture()
def provider(adapter: FakeAdapter, store: InMemoryStore, clock: FakeClock) -> TaskProvider:
    """Provider over the fake backend with a 5 minute cache and 3 retries."""
    return TaskProvider(adapter, store, cache_ttl_ms=300_000, max_attempts=3, clock=clock)
