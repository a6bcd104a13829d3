"""Provider configuration descriptors.

A ``ProviderConfig`` names the backend type and carries an options bag that
is read once, when the provider is built or switched.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from data_provider.core.config import AppEnvironment, Settings, settings as default_settings
from data_provider.domain.enums import ProviderType

logger = logging.getLogger(__name__)


class ProviderOptions(BaseModel):
    """Options bag for a provider configuration."""

    enable_logging: bool = False
    enable_caching: bool = False
    enable_local_persistence: bool = False
    enable_metrics: bool = False
    cache_ttl_seconds: float | None = Field(default=None, gt=0)
    database_url: str | None = None


class ProviderConfig(BaseModel):
    """Backend discriminator plus options.

    ``type`` is a plain string so unknown values reach the factory, which
    rejects them with UnknownProviderType.
    """

    type: str
    options: ProviderOptions = Field(default_factory=ProviderOptions)


PROVIDER_PRESETS: dict[str, ProviderConfig] = {
    "development": ProviderConfig(
        type=ProviderType.LOCAL.value,
        options=ProviderOptions(
            enable_local_persistence=True, enable_logging=True, enable_caching=False
        ),
    ),
    "production": ProviderConfig(
        type=ProviderType.RELATIONAL.value,
        options=ProviderOptions(enable_logging=False, enable_caching=True, enable_metrics=True),
    ),
    "testing": ProviderConfig(
        type=ProviderType.LOCAL.value,
        options=ProviderOptions(
            enable_local_persistence=False, enable_logging=False, enable_caching=False
        ),
    ),
    "local": ProviderConfig(
        type=ProviderType.LOCAL.value,
        options=ProviderOptions(enable_local_persistence=True, enable_caching=False),
    ),
    "relational": ProviderConfig(
        type=ProviderType.RELATIONAL.value,
        options=ProviderOptions(enable_caching=True),
    ),
}


def get_environment_config(settings: Settings | None = None) -> ProviderConfig:
    """Build the provider configuration for the current environment.

    - production: relational backend with caching and metrics
    - test: local backend, nothing persisted, no logging
    - development: backend from DATA_PROVIDER, logging and persistence on
    """
    settings = settings or default_settings

    if settings.app_env == AppEnvironment.PRODUCTION:
        return ProviderConfig(
            type=ProviderType.RELATIONAL.value,
            options=ProviderOptions(
                enable_logging=False,
                enable_caching=True,
                enable_metrics=True,
                cache_ttl_seconds=settings.cache_ttl_seconds,
                database_url=settings.database_url,
            ),
        )

    if settings.app_env == AppEnvironment.TEST:
        return PROVIDER_PRESETS["testing"].model_copy(deep=True)

    return ProviderConfig(
        type=settings.data_provider.value,
        options=ProviderOptions(
            enable_local_persistence=True,
            enable_logging=True,
            enable_caching=False,
            database_url=settings.database_url,
        ),
    )


def validate_config(config: ProviderConfig, settings: Settings | None = None) -> bool:
    """Check a configuration without building it.

    Returns False for an unknown type; only warns when a relational provider
    has no database URL, since one may still be injected directly.
    """
    settings = settings or default_settings

    if not config.type:
        logger.error("Data provider type is required")
        return False

    if config.type not in {t.value for t in ProviderType}:
        logger.error(f"Invalid data provider type: {config.type}")
        return False

    if config.type == ProviderType.RELATIONAL.value and not (
        config.options.database_url or settings.database_url
    ):
        logger.warning("DATABASE_URL is not set for the relational data provider")

    return True
