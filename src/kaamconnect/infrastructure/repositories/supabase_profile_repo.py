"""Supabase implementation of Profile repository."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from kaamconnect.domain.entities.profile import Profile, ProfileDraft
from kaamconnect.infrastructure.supabase.client import SupabaseClient
from kaamconnect.infrastructure.supabase.schemas import ProfileRow, parse_record


class SupabaseProfileRepository:
    """PostgREST implementation of IProfileRepository."""

    def __init__(self, client: SupabaseClient, table: str = "profiles") -> None:
        self._table = client.table(table)

    async def get(self, user_id: UUID) -> Profile:
        """Get the profile row for a user (PGRST116 when absent)."""
        data = await self._table.select_single("id", str(user_id))
        return self._to_entity(data)

    async def update(
        self, user_id: UUID, changes: dict[str, Any], updated_at: datetime
    ) -> Profile:
        """Update the user's row and return what the server stored."""
        values = self._to_wire(changes)
        values["updated_at"] = updated_at.isoformat()
        data = await self._table.update_single("id", str(user_id), values)
        return self._to_entity(data)

    async def create(self, draft: ProfileDraft) -> Profile:
        """Insert the onboarding row with zeroed rating counters."""
        values = self._to_wire(
            {
                "id": draft.id,
                "full_name": draft.full_name,
                "mobile_number": draft.mobile_number,
                "village": draft.village,
                "role": draft.role,
                "profile_picture_url": draft.profile_picture_url,
                "rating": 0,
                "total_ratings": 0,
            }
        )
        data = await self._table.insert_single(values)
        return self._to_entity(data)

    @staticmethod
    def _to_entity(data: dict[str, Any]) -> Profile:
        return parse_record(ProfileRow, data, "profile row").to_entity()

    @staticmethod
    def _to_wire(values: dict[str, Any]) -> dict[str, Any]:
        wire: dict[str, Any] = {}
        for key, value in values.items():
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, UUID):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            wire[key] = value
        return wire
