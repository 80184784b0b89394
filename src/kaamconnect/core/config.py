"""Client configuration using Pydantic Settings."""

from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Gramin KaamConnect")
    app_env: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Supabase
    supabase_url: str = Field(
        default="",
        description="Supabase project URL (e.g. https://xyzabc.supabase.co)",
    )
    supabase_anon_key: str = Field(
        default="",
        description="Supabase anonymous/public API key",
    )
    profiles_table: str = Field(default="profiles")

    # Auth session handling
    auth_persist_session: bool = Field(
        default=True,
        description="Keep session material in the storage adapter across restarts",
    )
    auth_auto_refresh_token: bool = Field(
        default=True,
        description="Refresh an expired stored session when it is read",
    )
    auth_refresh_margin_seconds: int = Field(default=60)
    session_storage_url: str = Field(
        default="",
        description="SQLAlchemy URL for persisted session material; empty keeps it in memory",
    )

    # HTTP
    http_timeout_seconds: float = Field(default=10.0)

    # Profile fetch retry policy
    profile_fetch_max_retries: int = Field(default=3, ge=0)
    profile_fetch_retry_base_seconds: float = Field(default=1.0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def supabase_rest_url(self) -> str:
        """PostgREST endpoint for table queries."""
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def supabase_auth_url(self) -> str:
        """GoTrue endpoint for authentication."""
        return f"{self.supabase_url.rstrip('/')}/auth/v1"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def supabase_project_ref(self) -> str:
        """Project reference, the first label of the project host."""
        host = urlparse(self.supabase_url).hostname or ""
        return host.split(".")[0] if host else ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def session_storage_key(self) -> str:
        """Storage key for session material, named like the JS SDK's."""
        return f"sb-{self.supabase_project_ref or 'local'}-auth-token"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
