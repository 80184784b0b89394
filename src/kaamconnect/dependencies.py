"""Factories wiring settings, the Supabase client and the session manager."""

import httpx

from kaamconnect.core.config import Settings, get_settings
from kaamconnect.core.logging import setup_logging
from kaamconnect.domain.services.session_manager import SessionManager
from kaamconnect.infrastructure.repositories.supabase_profile_repo import (
    SupabaseProfileRepository,
)
from kaamconnect.infrastructure.storage.base import StorageAdapter
from kaamconnect.infrastructure.storage.memory import MemoryStorage
from kaamconnect.infrastructure.storage.sqlalchemy_storage import SQLAlchemyStorage
from kaamconnect.infrastructure.supabase.client import SupabaseClient


def create_storage(settings: Settings) -> StorageAdapter:
    """Persistent storage when a URL is configured, memory otherwise."""
    if settings.session_storage_url:
        return SQLAlchemyStorage(settings.session_storage_url, echo=settings.debug)
    return MemoryStorage()


def create_supabase_client(
    settings: Settings | None = None,
    storage: StorageAdapter | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> SupabaseClient:
    """Build the Supabase service handle."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_logs=not settings.debug)
    return SupabaseClient(
        settings,
        storage=storage if storage is not None else create_storage(settings),
        http_client=http_client,
    )


def create_session_manager(
    client: SupabaseClient,
    settings: Settings | None = None,
) -> SessionManager:
    """Build a SessionManager bound to ``client``; call ``start()`` to mount it."""
    settings = settings or get_settings()
    return SessionManager(
        client.auth,
        SupabaseProfileRepository(client, table=settings.profiles_table),
        max_retries=settings.profile_fetch_max_retries,
        retry_base_delay=settings.profile_fetch_retry_base_seconds,
    )
