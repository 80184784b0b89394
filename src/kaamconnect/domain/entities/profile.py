"""Profile domain entity."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any
from uuid import UUID


class Role(StrEnum):
    """Marketplace role chosen at onboarding."""

    WORKER = "worker"
    PROVIDER = "provider"


# Columns a client may change; rating fields are recomputed by triggers.
PROFILE_EDITABLE_FIELDS = frozenset(
    {"full_name", "mobile_number", "village", "role", "profile_picture_url"}
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Profile:
    """Domain entity for a user profile (one row per auth user)."""

    id: UUID
    full_name: str
    mobile_number: str
    village: str
    role: Role
    profile_picture_url: str | None = None
    rating: float = 0.0
    total_ratings: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Ensure updated_at is always at least as recent as created_at."""
        if self.updated_at < self.created_at:
            object.__setattr__(self, "updated_at", self.created_at)

    def merged(self, changes: dict[str, Any], updated_at: datetime) -> "Profile":
        """Return a copy with editable ``changes`` applied.

        The receiver is left untouched so it can serve as a rollback target.
        """
        unknown = set(changes) - PROFILE_EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Not editable: {', '.join(sorted(unknown))}")
        values = dict(changes)
        if "role" in values:
            values["role"] = Role(values["role"])
        return replace(self, **values, updated_at=updated_at)


@dataclass(frozen=True)
class ProfileDraft:
    """Onboarding payload for creating the first profile row."""

    id: UUID
    full_name: str
    mobile_number: str
    village: str
    role: Role
    profile_picture_url: str | None = None
