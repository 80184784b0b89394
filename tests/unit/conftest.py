"""Shared fixtures for unit tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from kaamconnect.core.channel import Channel, Subscription
from kaamconnect.domain.entities.profile import Profile
from kaamconnect.domain.entities.session import AuthChangeEvent, AuthEvent, Session
from kaamconnect.domain.services.session_manager import SessionManager

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeAuthGateway:
    """Auth gateway with mocked remote calls and a real event channel."""

    def __init__(self) -> None:
        self.events: Channel[AuthEvent] = Channel()
        self.get_session = AsyncMock(return_value=None)
        self.sign_in_with_password = AsyncMock()
        self.sign_up = AsyncMock()
        self.sign_out = AsyncMock(return_value=None)

    def subscribe(self) -> Subscription[AuthEvent]:
        return self.events.subscribe()

    def emit(self, event: AuthChangeEvent | str, session: Session | None = None) -> None:
        self.events.publish(AuthEvent(event=event, session=session))  # type: ignore[arg-type]


class FakeProfileRepository:
    """Profile repository with one AsyncMock per operation."""

    def __init__(self) -> None:
        self.get = AsyncMock()
        self.update = AsyncMock()
        self.create = AsyncMock()


@pytest.fixture
def auth() -> FakeAuthGateway:
    """Create a fresh FakeAuthGateway (no session)."""
    return FakeAuthGateway()


@pytest.fixture
def profiles() -> FakeProfileRepository:
    """Create a fresh FakeProfileRepository."""
    return FakeProfileRepository()


@pytest.fixture
def sleep() -> AsyncMock:
    """Backoff sleep that returns at once and records its delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def manager(
    auth: FakeAuthGateway, profiles: FakeProfileRepository, sleep: AsyncMock
) -> SessionManager:
    """Manager with instant backoff and a frozen clock."""
    return SessionManager(auth, profiles, sleep=sleep, clock=lambda: NOW)


@pytest.fixture
async def active_manager(
    manager: SessionManager,
    auth: FakeAuthGateway,
    profiles: FakeProfileRepository,
    session: Session,
    profile: Profile,
) -> SessionManager:
    """Manager initialized into the active phase for ``profile``."""
    auth.get_session.return_value = session
    profiles.get.return_value = profile
    await manager.initialize()
    profiles.get.reset_mock()
    auth.get_session.reset_mock()
    return manager
