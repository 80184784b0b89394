"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import pytest
from jose import jwt

from kaamconnect.core.config import Settings
from kaamconnect.domain.entities.profile import Profile, Role
from kaamconnect.domain.entities.session import Session, User

TEST_SUPABASE_URL = "https://demoproj.supabase.co"
TEST_ANON_KEY = "test-anon-key"
TEST_JWT_SECRET = "test-jwt-secret-key-for-testing-only"

# Fixed timestamps keep profile comparisons deterministic
CREATED_AT = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
UPDATED_AT = datetime(2024, 3, 2, 14, 0, tzinfo=timezone.utc)


def make_access_token(
    user_id: UUID,
    email: str | None = "ramesh@example.com",
    expires_in: int = 3600,
    secret: str = TEST_JWT_SECRET,
) -> str:
    """Mint a Supabase-shaped access token."""
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": "authenticated",
        "aud": "authenticated",
        "exp": int((datetime.now(timezone.utc) + timedelta(seconds=expires_in)).timestamp()),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def make_user(user_id: UUID | None = None, email: str = "ramesh@example.com") -> User:
    return User(id=user_id or uuid4(), email=email)


def make_session(user: User, expires_in: int = 3600) -> Session:
    return Session(
        access_token=make_access_token(user.id, user.email, expires_in),
        refresh_token=f"refresh-{user.id}",
        user=user,
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    )


def make_profile(user_id: UUID, **overrides: Any) -> Profile:
    values: dict[str, Any] = {
        "id": user_id,
        "full_name": "Ramesh Kumar",
        "mobile_number": "9876543210",
        "village": "Sundarpur",
        "role": Role.WORKER,
        "rating": 4.5,
        "total_ratings": 10,
        "created_at": CREATED_AT,
        "updated_at": UPDATED_AT,
    }
    values.update(overrides)
    return Profile(**values)


async def settle(rounds: int = 20) -> None:
    """Let background tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at a fake project, independent of the environment."""
    return Settings(
        _env_file=None,
        supabase_url=TEST_SUPABASE_URL,
        supabase_anon_key=TEST_ANON_KEY,
        profile_fetch_retry_base_seconds=0,
    )


@pytest.fixture
def user_id() -> UUID:
    """A random user ID."""
    return uuid4()


@pytest.fixture
def user(user_id: UUID) -> User:
    return make_user(user_id)


@pytest.fixture
def session(user: User) -> Session:
    return make_session(user)


@pytest.fixture
def profile(user_id: UUID) -> Profile:
    """Ramesh, a worker from Sundarpur with 10 ratings."""
    return make_profile(user_id)
