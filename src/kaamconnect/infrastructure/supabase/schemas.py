"""Pydantic models for Supabase wire payloads.

Every response crosses ``parse_record`` before reaching the domain, so a
row with missing or mistyped columns fails as MalformedRowError instead of
leaking partially-filled entities.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kaamconnect.core.exceptions import MalformedRowError
from kaamconnect.domain.entities.profile import Profile, Role
from kaamconnect.domain.entities.session import Session, User
from kaamconnect.infrastructure.auth.claims import token_expiry

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_record(model: type[ModelT], data: Any, record: str) -> ModelT:
    """Validate untyped JSON into ``model`` or raise MalformedRowError."""
    try:
        if isinstance(data, (str, bytes)):
            return model.model_validate_json(data)
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedRowError(record, details=exc.errors(include_url=False)) from exc


class ApiErrorPayload(BaseModel):
    """Error body from PostgREST ({code, message, details, hint}) or GoTrue."""

    model_config = ConfigDict(extra="ignore")

    code: str | int | None = None
    error_code: str | None = None
    message: str | None = None
    msg: str | None = None
    error: str | None = None
    error_description: str | None = None
    details: Any | None = None
    hint: str | None = None

    @property
    def text(self) -> str:
        return (
            self.message
            or self.msg
            or self.error_description
            or self.error
            or "Unknown error"
        )

    @property
    def remote_code(self) -> str | None:
        if self.error_code:
            return self.error_code
        if isinstance(self.code, str):
            return self.code
        return self.error


class ProfileRow(BaseModel):
    """Row of the ``profiles`` table."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    full_name: str
    mobile_number: str
    village: str
    role: Role
    profile_picture_url: str | None = None
    rating: float = 0.0
    total_ratings: int = 0
    created_at: datetime
    updated_at: datetime

    def to_entity(self) -> Profile:
        return Profile(
            id=self.id,
            full_name=self.full_name,
            mobile_number=self.mobile_number,
            village=self.village,
            role=self.role,
            profile_picture_url=self.profile_picture_url,
            rating=self.rating,
            total_ratings=self.total_ratings,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class UserPayload(BaseModel):
    """GoTrue user object."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    email: str | None = None
    phone: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    app_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    def to_entity(self) -> User:
        return User(
            id=self.id,
            email=self.email or None,
            phone=self.phone or None,
            user_metadata=dict(self.user_metadata),
            app_metadata=dict(self.app_metadata),
            created_at=self.created_at,
        )

    @classmethod
    def from_entity(cls, user: User) -> "UserPayload":
        return cls(
            id=user.id,
            email=user.email,
            phone=user.phone,
            user_metadata=dict(user.user_metadata),
            app_metadata=dict(user.app_metadata),
            created_at=user.created_at,
        )


class SessionPayload(BaseModel):
    """GoTrue token response, also the persisted session format."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int | None = None
    expires_at: int | None = None
    user: UserPayload

    def to_entity(self) -> Session:
        if self.expires_at is not None:
            expires = datetime.fromtimestamp(self.expires_at, tz=timezone.utc)
        elif self.expires_in is not None:
            expires = datetime.now(timezone.utc) + timedelta(seconds=self.expires_in)
        else:
            expires = token_expiry(self.access_token)
        return Session(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            token_type=self.token_type,
            expires_at=expires,
            user=self.user.to_entity(),
        )

    @classmethod
    def from_entity(cls, session: Session) -> "SessionPayload":
        return cls(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            token_type=session.token_type,
            expires_at=int(session.expires_at.timestamp()) if session.expires_at else None,
            user=UserPayload.from_entity(session.user),
        )
