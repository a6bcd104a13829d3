"""Application configuration using Pydantic Settings.

Configuration is loaded from environment variables. Optionally, point
`ENV_FILE` at a local env file (for development); it is never loaded
implicitly.
"""

import os
from enum import Enum
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from data_provider.domain.enums import ProviderType, SearchPolicy


class AppEnvironment(str, Enum):
    """Application environment values."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


# Query options that configure the engine/pool rather than the DBAPI
# connection; asyncpg rejects them in connect().
_ENGINE_ONLY_QUERY_OPTIONS = {
    "pool_size",
    "max_overflow",
    "pool_timeout",
    "pool_recycle",
    "pool_pre_ping",
}


class Settings(BaseSettings):
    """
    Data provider settings with type validation.

    Read once at process start; the factory builds provider configurations
    from it and never polls it again.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.DEVELOPMENT
    app_name: str = "superadmin-data-provider"
    app_log_level: str = "INFO"

    # Observability
    observability_structured_logs: bool = True

    # Provider selection (development only; production/test are fixed)
    data_provider: ProviderType = ProviderType.LOCAL
    search_policy: SearchPolicy = SearchPolicy.REPLACE

    # Relational backend
    database_url: str | None = None

    # Local backend
    local_store_dir: str = ".local/data-provider"
    local_store_prefix: str = "superadmin-"
    local_latency_enabled: bool = True

    # Caching middleware
    cache_ttl_seconds: float = 30.0
    cache_max_entries: int = 1024

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.strip().lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("data_provider", mode="before")
    @classmethod
    def validate_data_provider(cls, v: str | ProviderType) -> str | ProviderType:
        """Accept the provider type case-insensitively."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("cache_ttl_seconds")
    @classmethod
    def validate_cache_ttl(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("cache_ttl_seconds must be positive")
        return v

    @field_validator("cache_max_entries")
    @classmethod
    def validate_cache_max_entries(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("cache_max_entries must be positive")
        return v

    @property
    def async_url(self) -> str | None:
        """Database URL normalized for the asyncpg driver.

        Engine-only query options are stripped; anything else (e.g.
        ``sslmode``) is passed through untouched.
        """
        if not self.database_url:
            return None
        return normalize_async_url(self.database_url)


def normalize_async_url(url: str) -> str:
    """Rewrite a Postgres URL to use asyncpg and drop engine-only options.

    Non-Postgres URLs (e.g. ``sqlite+aiosqlite``) are returned unchanged.
    """
    parts = urlsplit(url)
    scheme = parts.scheme
    if scheme in ("postgres", "postgresql") or scheme.startswith("postgresql+"):
        scheme = "postgresql+asyncpg"
    else:
        return url

    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in _ENGINE_ONLY_QUERY_OPTIONS
    ]
    return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


settings = Settings()
