"""Supabase client: one httpx connection pool shared by auth and tables."""

from typing import Any

import httpx

from kaamconnect.core.config import Settings
from kaamconnect.infrastructure.storage.base import StorageAdapter
from kaamconnect.infrastructure.storage.memory import MemoryStorage
from kaamconnect.infrastructure.supabase.auth import GoTrueClient
from kaamconnect.infrastructure.supabase.postgrest import PostgrestTable


class SupabaseClient:
    """Explicitly constructed service handle for one Supabase project."""

    def __init__(
        self,
        settings: Settings,
        storage: StorageAdapter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not settings.supabase_url or not settings.supabase_anon_key:
            raise ValueError("supabase_url and supabase_anon_key must be configured")
        self._settings = settings
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self.auth = GoTrueClient(settings, self._http, storage or MemoryStorage())

    def table(self, name: str) -> PostgrestTable:
        return PostgrestTable(
            self._http,
            self._settings.supabase_rest_url,
            name,
            self._settings.supabase_anon_key,
            tokens=self.auth,
        )

    async def aclose(self) -> None:
        self.auth.close()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "SupabaseClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
