"""
Pytest fixtures for the store, clock, client and caller identities.

Every test gets a fresh in-memory document store and a frozen clock, both
swapped into the app through dependency overrides, so no Redis is needed.
"""

import os
from typing import AsyncGenerator

os.environ["STORE_BACKEND"] = "memory"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from liveroom.main import app
from liveroom.infrastructure.memory_store import MemoryDocumentStore
from liveroom.models.audience import Identity
from liveroom.services import admission_service
from liveroom.services.room_service import upsert_room
from liveroom.services.store_factory import create_store, get_store
from liveroom.services.window_clock import get_clock

# 2026-01-01T00:00:00Z
BASE_NOW_MS = 1_767_225_600_000
HOUR_MS = 3_600_000


class FakeClock:
    """Controllable epoch-ms clock."""

    def __init__(self, now: int = BASE_NOW_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


def identity_headers(user_id: str, display_name: str = "Test User", role: str = "audience") -> dict:
    headers = {"X-User-Id": user_id, "X-Role": role, "X-Phone": "+15550100"}
    if display_name:
        headers["X-Display-Name"] = display_name
    return headers


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryDocumentStore:
    # Built the way the app builds it, with no test-only tuning
    return create_store()


@pytest.fixture
def identity() -> Identity:
    return Identity(user_id="u1", display_name="Asha", phone="+15550101", email="asha@example.com")


@pytest.fixture
def auth_headers() -> dict:
    return identity_headers("u1", "Asha")


@pytest.fixture
def host_headers() -> dict:
    return identity_headers("host1", "Host", role="host")


@pytest_asyncio.fixture(scope="function")
async def client(store: MemoryDocumentStore, clock: FakeClock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the store and clock dependencies."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def upcoming_room(store: MemoryDocumentStore, clock: FakeClock):
    """Room starting in an hour, one hour long, 100 seats."""
    return await upsert_room(
        store,
        "upcoming-1",
        start_ms=clock.now + HOUR_MS,
        end_ms=clock.now + 2 * HOUR_MS,
    )


@pytest_asyncio.fixture
async def small_room(store: MemoryDocumentStore, clock: FakeClock):
    """Upcoming room with only two seats."""
    await upsert_room(store, "small-1", start_ms=clock.now + HOUR_MS, end_ms=clock.now + 2 * HOUR_MS)
    await admission_service.configure(store, "small-1", capacity=2)
    return "small-1"


@pytest_asyncio.fixture
async def current_room(store: MemoryDocumentStore, clock: FakeClock):
    """Room that started ten minutes ago."""
    return await upsert_room(
        store,
        "current-1",
        start_ms=clock.now - 600_000,
        end_ms=clock.now + HOUR_MS,
    )


@pytest_asyncio.fixture
async def ended_room(store: MemoryDocumentStore, clock: FakeClock):
    return await upsert_room(
        store,
        "ended-1",
        is_live=True,
        start_ms=clock.now - 2 * HOUR_MS,
        end_ms=clock.now - HOUR_MS,
    )
