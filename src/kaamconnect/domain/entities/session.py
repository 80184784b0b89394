"""Auth session domain entities."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any
from uuid import UUID


class AuthChangeEvent(StrEnum):
    """Notifications emitted by the auth service."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


@dataclass(frozen=True)
class User:
    """Authenticated principal as known to the auth service."""

    id: UUID
    email: str | None = None
    phone: str | None = None
    user_metadata: dict[str, Any] = field(default_factory=dict)
    app_metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass(frozen=True)
class Session:
    """Live session. Token material is opaque to everything but the gateway."""

    access_token: str
    refresh_token: str
    user: User
    expires_at: datetime | None = None
    token_type: str = "bearer"

    def is_expired(self, margin: timedelta = timedelta(0)) -> bool:
        """True when the access token is expired or expires within ``margin``."""
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) + margin >= self.expires_at


@dataclass(frozen=True)
class AuthEvent:
    """One notification on the auth event stream."""

    event: AuthChangeEvent
    session: Session | None = None
