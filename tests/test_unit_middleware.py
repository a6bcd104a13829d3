"""
Unit tests for provider middleware.

Tests cover:
- Chain ordering (first middleware is outermost)
- Logging before dispatch and after success/failure, with redaction
- TTL caching of reads and per-resource invalidation on writes
- Prometheus metrics per operation and outcome
"""

import logging

import pytest
from prometheus_client import CollectorRegistry

from data_provider.core.errors import NotFoundError
from data_provider.core.observability import Metrics
from data_provider.domain.query import (
    CreateParams,
    DeleteManyParams,
    GetOneParams,
    ListParams,
    UpdateParams,
)
from data_provider.providers.base import DataProvider
from data_provider.providers.middleware import (
    CachingMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    MiddlewareProvider,
    describe_params,
    summarize_result,
)
from tests.conftest import USERS, create_all


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def tracing(name: str, trace: list[str]):
    def middleware(operation, call_next):
        async def wrapped(resource, params):
            trace.append(f"{name}:before")
            result = await call_next(resource, params)
            trace.append(f"{name}:after")
            return result

        return wrapped

    return middleware


class TestMiddlewareProvider:
    """Tests for chain composition."""

    @pytest.mark.anyio
    async def test_satisfies_protocol(self, local_provider):
        assert isinstance(MiddlewareProvider(local_provider, []), DataProvider)

    @pytest.mark.anyio
    async def test_first_middleware_is_outermost(self, local_provider):
        trace: list[str] = []
        provider = MiddlewareProvider(
            local_provider, [tracing("outer", trace), tracing("inner", trace)]
        )

        await provider.get_list("users", ListParams())
        assert trace == ["outer:before", "inner:before", "inner:after", "outer:after"]

    @pytest.mark.anyio
    async def test_no_middleware_delegates(self, local_provider):
        provider = MiddlewareProvider(local_provider)
        created = await provider.create("users", CreateParams(data={"name": "Ann"}))
        fetched = await local_provider.get_one("users", GetOneParams(id=created.data["id"]))
        assert fetched.data["name"] == "Ann"


class TestLoggingMiddleware:
    """Tests for LoggingMiddleware."""

    @pytest.mark.anyio
    async def test_logs_dispatch_and_success(self, local_provider, caplog):
        provider = MiddlewareProvider(local_provider, [LoggingMiddleware()])

        with caplog.at_level(logging.INFO, logger="data_provider.providers.middleware"):
            await provider.get_list("users", ListParams())

        messages = [r.getMessage() for r in caplog.records]
        assert "[DataProvider] get_list: users" in messages
        assert "[DataProvider] get_list: users success" in messages

        success = next(r for r in caplog.records if r.getMessage().endswith("success"))
        assert success.result["total"] == 0

    @pytest.mark.anyio
    async def test_logs_and_reraises_errors(self, local_provider, caplog):
        provider = MiddlewareProvider(local_provider, [LoggingMiddleware()])

        with caplog.at_level(logging.INFO, logger="data_provider.providers.middleware"):
            with pytest.raises(NotFoundError):
                await provider.get_one("users", GetOneParams(id="9"))

        error = next(r for r in caplog.records if r.levelno == logging.ERROR)
        assert error.getMessage() == "[DataProvider] get_one: users error"
        assert error.error_type == "NotFoundError"

    @pytest.mark.anyio
    async def test_sensitive_params_redacted(self, local_provider, caplog):
        provider = MiddlewareProvider(local_provider, [LoggingMiddleware()])

        with caplog.at_level(logging.INFO, logger="data_provider.providers.middleware"):
            await provider.create("users", CreateParams(data={"name": "Ann", "password": "pw"}))

        dispatch = caplog.records[0]
        assert dispatch.params["data"]["password"] == "***REDACTED***"
        assert dispatch.params["data"]["name"] == "Ann"

    @pytest.mark.anyio
    async def test_custom_logger(self, local_provider, caplog):
        custom = logging.getLogger("tests.custom_provider_log")
        provider = MiddlewareProvider(local_provider, [LoggingMiddleware(custom)])

        with caplog.at_level(logging.INFO, logger="tests.custom_provider_log"):
            await provider.delete_many("users", DeleteManyParams(ids=[]))

        assert all(r.name == "tests.custom_provider_log" for r in caplog.records)
        assert len(caplog.records) == 2

    @pytest.mark.anyio
    async def test_describe_and_summarize(self):
        assert describe_params(GetOneParams(id=1)) == {"id": 1}
        assert summarize_result(None) == {"type": "NoneType"}


class TestCachingMiddleware:
    """Tests for CachingMiddleware."""

    @pytest.mark.anyio
    async def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            CachingMiddleware(ttl_seconds=0)

    @pytest.mark.anyio
    async def test_repeated_read_served_from_cache(self, local_provider, recording_delay):
        cache = CachingMiddleware(ttl_seconds=30, clock=FakeClock())
        provider = MiddlewareProvider(local_provider, [cache])

        first = await provider.get_list("users", ListParams())
        second = await provider.get_list("users", ListParams())

        assert first == second
        assert recording_delay.calls == ["get_list"]
        assert len(cache) == 1

    @pytest.mark.anyio
    async def test_different_params_are_different_entries(self, local_provider, recording_delay):
        provider = MiddlewareProvider(local_provider, [CachingMiddleware(clock=FakeClock())])

        await provider.get_list("users", ListParams(search="a"))
        await provider.get_list("users", ListParams(search="b"))
        assert recording_delay.calls == ["get_list", "get_list"]

    @pytest.mark.anyio
    async def test_entries_expire(self, local_provider, recording_delay):
        clock = FakeClock()
        provider = MiddlewareProvider(local_provider, [CachingMiddleware(ttl_seconds=5, clock=clock)])

        await provider.get_list("users", ListParams())
        clock.now = 5.0
        await provider.get_list("users", ListParams())
        assert recording_delay.calls == ["get_list", "get_list"]

    @pytest.mark.anyio
    async def test_write_invalidates_resource(self, local_provider):
        provider = MiddlewareProvider(local_provider, [CachingMiddleware(clock=FakeClock())])
        await create_all(provider, "users", USERS[:1])

        before = await provider.get_list("users", ListParams())
        await provider.update("users", UpdateParams(id="1", data={"name": "Renamed"}))
        after = await provider.get_list("users", ListParams())

        assert before.data[0]["name"] == "Alice"
        assert after.data[0]["name"] == "Renamed"

    @pytest.mark.anyio
    async def test_failed_write_still_invalidates(self, local_provider):
        cache = CachingMiddleware(clock=FakeClock())
        provider = MiddlewareProvider(local_provider, [cache])
        await provider.get_list("users", ListParams())

        with pytest.raises(NotFoundError):
            await provider.update("users", UpdateParams(id="9", data={"name": "x"}))
        assert len(cache) == 0

    @pytest.mark.anyio
    async def test_write_leaves_other_resources_cached(self, local_provider, recording_delay):
        cache = CachingMiddleware(clock=FakeClock())
        provider = MiddlewareProvider(local_provider, [cache])

        await provider.get_list("products", ListParams())
        await provider.create("users", CreateParams(data={"name": "Ann"}))
        await provider.get_list("products", ListParams())

        assert recording_delay.calls == ["get_list", "create"]

    @pytest.mark.anyio
    async def test_cached_results_are_isolated(self, local_provider):
        provider = MiddlewareProvider(local_provider, [CachingMiddleware(clock=FakeClock())])
        await create_all(provider, "users", USERS[:1])

        first = await provider.get_one("users", GetOneParams(id="1"))
        first.data["name"] = "mutated"
        second = await provider.get_one("users", GetOneParams(id="1"))
        assert second.data["name"] == "Alice"

    @pytest.mark.anyio
    async def test_errors_not_cached(self, local_provider, recording_delay):
        provider = MiddlewareProvider(local_provider, [CachingMiddleware(clock=FakeClock())])

        for _ in range(2):
            with pytest.raises(NotFoundError):
                await provider.get_one("users", GetOneParams(id="1"))
        assert recording_delay.calls == ["get_one", "get_one"]

    @pytest.mark.anyio
    async def test_rejects_non_positive_max_entries(self):
        with pytest.raises(ValueError):
            CachingMiddleware(max_entries=0)

    @pytest.mark.anyio
    async def test_expired_entries_purged_when_storing(self, local_provider):
        """Distinct one-off reads do not pile up once they expire."""
        clock = FakeClock()
        cache = CachingMiddleware(ttl_seconds=5, clock=clock)
        provider = MiddlewareProvider(local_provider, [cache])

        for i in range(500):
            clock.now = i * 10.0
            await provider.get_list("users", ListParams(search=f"query-{i}"))

        assert len(cache) == 1

    @pytest.mark.anyio
    async def test_purge_expired(self):
        clock = FakeClock()
        cache = CachingMiddleware(ttl_seconds=5, clock=clock)
        cache.set(("users", "get_list", "a"), "a")
        clock.now = 3.0
        cache.set(("users", "get_list", "b"), "b")

        clock.now = 6.0
        assert cache.purge_expired() == 1
        assert cache.get(("users", "get_list", "b")) == "b"

    @pytest.mark.anyio
    async def test_oldest_entry_evicted_at_bound(self, local_provider, recording_delay):
        cache = CachingMiddleware(clock=FakeClock(), max_entries=2)
        provider = MiddlewareProvider(local_provider, [cache])

        for term in ("a", "b", "c"):
            await provider.get_list("users", ListParams(search=term))
        assert len(cache) == 2

        await provider.get_list("users", ListParams(search="c"))
        assert len(recording_delay.calls) == 3

        await provider.get_list("users", ListParams(search="a"))
        assert len(recording_delay.calls) == 4
        assert len(cache) == 2

    @pytest.mark.anyio
    async def test_restored_key_moves_to_end_of_eviction_order(self):
        cache = CachingMiddleware(clock=FakeClock(), max_entries=2)
        first, second, third = (("users", "get_one", str(i)) for i in range(3))

        cache.set(first, 1)
        cache.set(second, 2)
        cache.set(first, 10)
        cache.set(third, 3)

        assert cache.get(first) == 10
        assert cache.get(second) is None
        assert cache.get(third) == 3


class TestMetricsMiddleware:
    """Tests for MetricsMiddleware."""

    @pytest.mark.anyio
    async def test_counts_success_and_error(self, local_provider):
        registry = CollectorRegistry()
        provider = MiddlewareProvider(local_provider, [MetricsMiddleware(Metrics(registry))])

        await provider.get_list("users", ListParams())
        with pytest.raises(NotFoundError):
            await provider.get_one("users", GetOneParams(id="1"))

        success = registry.get_sample_value(
            "data_provider_operations_total",
            {"operation": "get_list", "resource": "users", "status": "success"},
        )
        error = registry.get_sample_value(
            "data_provider_operations_total",
            {"operation": "get_one", "resource": "users", "status": "error"},
        )
        assert success == 1.0
        assert error == 1.0

    @pytest.mark.anyio
    async def test_records_duration(self, local_provider):
        registry = CollectorRegistry()
        provider = MiddlewareProvider(local_provider, [MetricsMiddleware(Metrics(registry))])

        await provider.create("users", CreateParams(data={"name": "Ann"}))

        count = registry.get_sample_value(
            "data_provider_operation_duration_seconds_count",
            {"operation": "create", "resource": "users"},
        )
        assert count == 1.0

    @pytest.mark.anyio
    async def test_cache_hits_still_counted(self, local_provider, recording_delay):
        registry = CollectorRegistry()
        provider = MiddlewareProvider(
            local_provider,
            [MetricsMiddleware(Metrics(registry)), CachingMiddleware(clock=FakeClock())],
        )

        await provider.get_list("users", ListParams())
        await provider.get_list("users", ListParams())

        assert recording_delay.calls == ["get_list"]
        assert registry.get_sample_value(
            "data_provider_operations_total",
            {"operation": "get_list", "resource": "users", "status": "success"},
        ) == 2.0
