"""
Provider factory: resolves a configuration descriptor to a live provider.

``ProviderFactory`` is an explicit handle owning the active provider. Callers
resolve through ``factory.provider`` on every call; ``switch_provider``
replaces it for later resolutions only. A call already dispatched against
the previous provider completes there: switching is NOT transactional with
respect to in-flight calls.

For code that wants one process-wide handle, ``get_instance`` lazily builds
and memoizes a factory from the environment. Tests and multi-tenant hosts
should build their own ``ProviderFactory`` (or ``fork`` one) instead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from data_provider.core.config import Settings, settings as default_settings
from data_provider.core.db import create_async_engine_for, create_sessionmaker
from data_provider.core.errors import UnknownProviderType
from data_provider.core.observability import Metrics, configure_logging
from data_provider.core.provider_config import ProviderConfig, get_environment_config
from data_provider.domain.enums import ProviderType
from data_provider.domain.query import Record
from data_provider.providers.base import DataProvider
from data_provider.providers.latency import DelayStrategy, NoDelay, OperationDelay
from data_provider.providers.local import LocalDataProvider
from data_provider.providers.middleware import (
    CachingMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    Middleware,
    MiddlewareProvider,
)
from data_provider.providers.persistence import JsonFileKeyValueStore, KeyValueStore
from data_provider.providers.relational import RelationalDataProvider
from data_provider.providers.resources import ResourceRegistry

logger = logging.getLogger(__name__)


@dataclass
class ProviderDependencies:
    """Collaborators injected into backends instead of being looked up globally."""

    settings: Settings = field(default_factory=lambda: default_settings)
    sessionmaker: async_sessionmaker[AsyncSession] | None = None
    store: KeyValueStore | None = None
    delay: DelayStrategy | None = None
    seed_data: Mapping[str, list[Record]] | None = None
    registry: ResourceRegistry | None = None
    metrics: Metrics | None = None


ProviderBuilder = Callable[[ProviderConfig, ProviderDependencies], DataProvider]


def _build_local(config: ProviderConfig, deps: ProviderDependencies) -> DataProvider:
    store = None
    if config.options.enable_local_persistence:
        store = deps.store or JsonFileKeyValueStore(deps.settings.local_store_dir)

    delay = deps.delay
    if delay is None:
        delay = OperationDelay() if deps.settings.local_latency_enabled else NoDelay()

    return LocalDataProvider(
        seed_data=deps.seed_data,
        store=store,
        key_prefix=deps.settings.local_store_prefix,
        delay=delay,
        registry=deps.registry,
        search_policy=deps.settings.search_policy,
    )


def _build_relational(config: ProviderConfig, deps: ProviderDependencies) -> DataProvider:
    sessionmaker = deps.sessionmaker
    if sessionmaker is None and config.options.database_url:
        sessionmaker = create_sessionmaker(create_async_engine_for(config.options.database_url))

    # Without an explicit sessionmaker the process-wide one is resolved on first use
    return RelationalDataProvider(
        sessionmaker=sessionmaker,
        registry=deps.registry,
        search_policy=deps.settings.search_policy,
    )


_BUILDERS: dict[str, ProviderBuilder] = {
    ProviderType.LOCAL.value: _build_local,
    ProviderType.RELATIONAL.value: _build_relational,
}


def register_provider(provider_type: str, builder: ProviderBuilder) -> None:
    """Register (or replace) the builder for a provider type."""
    _BUILDERS[provider_type] = builder


def create_provider(
    config: ProviderConfig, deps: ProviderDependencies | None = None
) -> DataProvider:
    """Map ``config.type`` to a bare backend (no middleware).

    Raises:
        UnknownProviderType: If no builder is registered for the type
    """
    builder = _BUILDERS.get(config.type)
    if builder is None:
        raise UnknownProviderType(config.type)
    return builder(config, deps or ProviderDependencies())


def build_middlewares(
    config: ProviderConfig, deps: ProviderDependencies | None = None
) -> list[Middleware]:
    """Middleware chain selected by the options bag, outermost first.

    metrics -> logging -> caching, so cache hits are still logged and timed.
    """
    deps = deps or ProviderDependencies()
    options = config.options

    middlewares: list[Middleware] = []
    if options.enable_metrics:
        middlewares.append(MetricsMiddleware(deps.metrics))
    if options.enable_logging:
        middlewares.append(LoggingMiddleware())
    if options.enable_caching:
        ttl = options.cache_ttl_seconds or deps.settings.cache_ttl_seconds
        middlewares.append(
            CachingMiddleware(ttl_seconds=ttl, max_entries=deps.settings.cache_max_entries)
        )
    return middlewares


def build_provider(
    config: ProviderConfig, deps: ProviderDependencies | None = None
) -> DataProvider:
    """Backend for ``config`` wrapped in the middleware its options ask for."""
    deps = deps or ProviderDependencies()
    backend = create_provider(config, deps)
    middlewares = build_middlewares(config, deps)
    if not middlewares:
        return backend
    return MiddlewareProvider(backend, middlewares)


class ProviderFactory:
    """Handle owning the currently active provider and its configuration."""

    def __init__(self, config: ProviderConfig, deps: ProviderDependencies | None = None) -> None:
        self._deps = deps or ProviderDependencies()
        self._config = config.model_copy(deep=True)
        self._provider = build_provider(self._config, self._deps)
        logger.info(f"Data provider initialized: {self._config.type}")

    @property
    def provider(self) -> DataProvider:
        return self._provider

    def get_provider(self) -> DataProvider:
        return self._provider

    def get_config(self) -> ProviderConfig:
        return self._config.model_copy(deep=True)

    def switch_provider(self, config: ProviderConfig) -> DataProvider:
        """Replace the active provider.

        The new provider is built before anything is replaced, so an invalid
        configuration leaves the current provider active.
        """
        new_config = config.model_copy(deep=True)
        new_provider = build_provider(new_config, self._deps)
        previous = self._config.type
        self._config, self._provider = new_config, new_provider
        logger.info(f"Data provider switched: {previous} -> {new_config.type}")
        return new_provider

    def fork(self, config: ProviderConfig | None = None) -> ProviderFactory:
        """Independent handle; switching it never affects this one."""
        return ProviderFactory(config or self._config, self._deps)


_instance: ProviderFactory | None = None


def get_instance(
    config: ProviderConfig | None = None, deps: ProviderDependencies | None = None
) -> ProviderFactory:
    """Process-wide factory, built on first call and memoized.

    Arguments are only used on the first call, which also applies the
    logging settings (structured JSON output, level, service name).
    """
    global _instance

    if _instance is None:
        configure_logging(deps.settings if deps else default_settings)
        _instance = ProviderFactory(config or get_environment_config(), deps)
    return _instance


def reset_instance() -> None:
    """Forget the process-wide factory. Useful for tests."""
    global _instance
    _instance = None


def get_data_provider() -> DataProvider:
    """Active provider of the process-wide factory."""
    return get_instance().provider
