"""Pydantic schemas for profile writes."""

import re
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from kaamconnect.domain.entities.profile import ProfileDraft, Role

MOBILE_NUMBER_PATTERN = re.compile(r"^[6-9]\d{9}$")

# NOT NULL columns: may be omitted from an update, never set to null
REQUIRED_PROFILE_COLUMNS = ("full_name", "mobile_number", "village", "role")


def sanitize_text(value: str) -> str:
    """Trim and strip angle brackets from free text."""
    return value.strip().replace("<", "").replace(">", "")


def normalize_mobile_number(value: str) -> str:
    number = re.sub(r"\s+", "", value)
    if not MOBILE_NUMBER_PATTERN.match(number):
        raise ValueError("Please enter a valid 10-digit mobile number")
    return number


class ProfileUpdate(BaseModel):
    """Schema for editing a profile (all fields optional, unknown fields rejected)."""

    model_config = ConfigDict(extra="forbid")

    full_name: str | None = Field(None, min_length=1, max_length=100)
    mobile_number: str | None = None
    village: str | None = Field(None, min_length=1, max_length=100)
    role: Role | None = None
    profile_picture_url: str | None = Field(None, max_length=500)

    @field_validator("full_name", "village", mode="before")
    @classmethod
    def _sanitize(cls, value: str | None) -> str | None:
        return sanitize_text(value) if isinstance(value, str) else value

    @field_validator("mobile_number")
    @classmethod
    def _mobile(cls, value: str | None) -> str | None:
        return normalize_mobile_number(value) if value is not None else None

    @model_validator(mode="after")
    def _no_nulls_for_required_columns(self) -> "ProfileUpdate":
        nulled = [
            name
            for name in REQUIRED_PROFILE_COLUMNS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulled:
            raise ValueError(f"Cannot be cleared: {', '.join(nulled)}")
        return self

    def changes(self) -> dict[str, object]:
        """Only the fields the caller actually set."""
        return self.model_dump(exclude_unset=True)


class ProfileCreate(BaseModel):
    """Schema for the onboarding insert."""

    model_config = ConfigDict(extra="forbid")

    id: UUID
    full_name: str = Field(..., min_length=1, max_length=100)
    mobile_number: str
    village: str = Field(..., min_length=1, max_length=100)
    role: Role
    profile_picture_url: str | None = Field(None, max_length=500)

    @field_validator("full_name", "village", mode="before")
    @classmethod
    def _sanitize(cls, value: str) -> str:
        return sanitize_text(value) if isinstance(value, str) else value

    @field_validator("mobile_number")
    @classmethod
    def _mobile(cls, value: str) -> str:
        return normalize_mobile_number(value)

    def to_draft(self) -> ProfileDraft:
        return ProfileDraft(
            id=self.id,
            full_name=self.full_name,
            mobile_number=self.mobile_number,
            village=self.village,
            role=self.role,
            profile_picture_url=self.profile_picture_url,
        )
