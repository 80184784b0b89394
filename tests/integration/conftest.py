"""Fixtures wiring the real client stack to the in-process Supabase fake."""

import asyncio
from collections.abc import AsyncGenerator, Callable

import pytest
from httpx import ASGITransport, AsyncClient

from kaamconnect.core.config import Settings
from kaamconnect.dependencies import create_session_manager, create_supabase_client
from kaamconnect.domain.entities.state import ManagerState
from kaamconnect.domain.services.session_manager import SessionManager
from kaamconnect.infrastructure.storage.memory import MemoryStorage
from kaamconnect.infrastructure.supabase.client import SupabaseClient
from tests.conftest import TEST_SUPABASE_URL
from tests.integration.fake_supabase import FakeSupabase

RAMESH_EMAIL = "ramesh@example.com"
RAMESH_PASSWORD = "ramesh-secret-1"


async def wait_for(
    manager: SessionManager,
    predicate: Callable[[ManagerState], bool],
    timeout: float = 2.0,
) -> ManagerState:
    """Poll until the manager's state satisfies ``predicate``."""

    async def _poll() -> ManagerState:
        while not predicate(manager.state):
            await asyncio.sleep(0.01)
        return manager.state

    return await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def fake() -> FakeSupabase:
    """Fresh fake backend per test."""
    return FakeSupabase()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
async def http(fake: FakeSupabase) -> AsyncGenerator[AsyncClient, None]:
    """httpx client routed into the fake app."""
    transport = ASGITransport(app=fake.app)
    async with AsyncClient(transport=transport, base_url=TEST_SUPABASE_URL) as c:
        yield c


@pytest.fixture
async def client(
    settings: Settings, storage: MemoryStorage, http: AsyncClient
) -> AsyncGenerator[SupabaseClient, None]:
    """Supabase client sharing ``storage`` and talking to the fake."""
    async with create_supabase_client(settings, storage=storage, http_client=http) as c:
        yield c


@pytest.fixture
def manager(client: SupabaseClient, settings: Settings) -> SessionManager:
    """Unstarted manager over the real repository and gateway."""
    return create_session_manager(client, settings)
