"""Profile repository protocol."""

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from kaamconnect.domain.entities.profile import Profile, ProfileDraft


class IProfileRepository(Protocol):
    """Repository interface for Profile rows."""

    async def get(self, user_id: UUID) -> Profile:
        """Get the profile row for a user.

        Raises RemoteError with code PGRST116 when no row matches.
        """
        ...

    async def update(
        self, user_id: UUID, changes: dict[str, Any], updated_at: datetime
    ) -> Profile:
        """Update the user's row and return the stored values."""
        ...

    async def create(self, draft: ProfileDraft) -> Profile:
        """Insert the first profile row. Raises code 23505 on duplicates."""
        ...
