"""Session storage adapter protocol."""

from typing import Protocol


class StorageAdapter(Protocol):
    """Async key/value store for session material (AsyncStorage-shaped)."""

    async def get_item(self, key: str) -> str | None:
        """Return the stored value or None."""
        ...

    async def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    async def remove_item(self, key: str) -> None:
        """Delete ``key``; a missing key is not an error."""
        ...
