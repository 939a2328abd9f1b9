"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from tablequeue.db import get_test_engine
from tablequeue.transport.configuration import QueueConfiguration, resolve_configuration
from tablequeue.transport.store import QueueStore


class FakeClock:
    """Controllable replacement for the store clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine; the queue table starts missing."""
    engine = get_test_engine()

    yield engine

    await engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    """Create a clock frozen at a known instant."""
    return FakeClock(datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture
def configuration() -> QueueConfiguration:
    """Create the default transport configuration."""
    return resolve_configuration("doctrine://default")


@pytest_asyncio.fixture
async def store(
    engine: AsyncEngine,
    configuration: QueueConfiguration,
    clock: FakeClock,
) -> QueueStore:
    """Create a store on the test engine."""
    return QueueStore(configuration, engine, clock=clock)
