"""
Composable cross-cutting wrappers around a data provider.

A middleware takes an operation name and the next callable in the chain and
returns a wrapped callable with the same signature ``(resource, params)``.
``MiddlewareProvider`` applies an ordered list of them to each of the nine
operations of an inner provider; the first middleware in the list is the
outermost. Neither the backend nor any middleware knows about the others.

Usage:
    provider = MiddlewareProvider(
        LocalDataProvider(),
        [MetricsMiddleware(), LoggingMiddleware(), CachingMiddleware(ttl_seconds=30)],
    )
"""

from __future__ import annotations

import copy
import json
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pydantic import BaseModel

from data_provider.core.observability import Metrics, metrics as default_metrics, sanitize_payload
from data_provider.domain.enums import READ_OPERATIONS, Operation
from data_provider.domain.query import (
    CreateParams,
    DeleteManyParams,
    DeleteParams,
    GetManyParams,
    GetManyReferenceParams,
    GetOneParams,
    IdsResult,
    ListParams,
    ListResult,
    RecordResult,
    RecordsResult,
    UpdateManyParams,
    UpdateParams,
)
from data_provider.providers.base import OPERATION_NAMES, DataProvider

logger = logging.getLogger(__name__)

OperationCall = Callable[[str, Any], Awaitable[Any]]
Middleware = Callable[[str, OperationCall], OperationCall]


class MiddlewareProvider:
    """A provider whose operations run through a middleware chain."""

    def __init__(self, inner: DataProvider, middlewares: Sequence[Middleware] = ()) -> None:
        self.inner = inner
        self.middlewares = tuple(middlewares)
        self._calls: dict[str, OperationCall] = {}
        for name in OPERATION_NAMES:
            call: OperationCall = getattr(inner, name)
            for middleware in reversed(self.middlewares):
                call = middleware(name, call)
            self._calls[name] = call

    async def get_list(self, resource: str, params: ListParams) -> ListResult:
        return await self._calls[Operation.GET_LIST.value](resource, params)

    async def get_one(self, resource: str, params: GetOneParams) -> RecordResult:
        return await self._calls[Operation.GET_ONE.value](resource, params)

    async def get_many(self, resource: str, params: GetManyParams) -> RecordsResult:
        return await self._calls[Operation.GET_MANY.value](resource, params)

    async def get_many_reference(
        self, resource: str, params: GetManyReferenceParams
    ) -> ListResult:
        return await self._calls[Operation.GET_MANY_REFERENCE.value](resource, params)

    async def create(self, resource: str, params: CreateParams) -> RecordResult:
        return await self._calls[Operation.CREATE.value](resource, params)

    async def update(self, resource: str, params: UpdateParams) -> RecordResult:
        return await self._calls[Operation.UPDATE.value](resource, params)

    async def update_many(self, resource: str, params: UpdateManyParams) -> IdsResult:
        return await self._calls[Operation.UPDATE_MANY.value](resource, params)

    async def delete(self, resource: str, params: DeleteParams) -> RecordResult:
        return await self._calls[Operation.DELETE.value](resource, params)

    async def delete_many(self, resource: str, params: DeleteManyParams) -> IdsResult:
        return await self._calls[Operation.DELETE_MANY.value](resource, params)


# ============================================================================
# Logging
# ============================================================================


def describe_params(params: Any) -> Any:
    """JSON-safe, redacted view of operation parameters for log lines."""
    if isinstance(params, BaseModel):
        params = params.model_dump(mode="json")
    return sanitize_payload(params)


def summarize_result(result: Any) -> dict[str, Any]:
    """Small summary of a result; full record payloads are never logged."""
    if isinstance(result, ListResult):
        return {
            "count": len(result.data),
            "total": result.total,
            "page": result.page,
            "per_page": result.per_page,
            "total_pages": result.total_pages,
        }
    if isinstance(result, RecordResult):
        return {"id": result.data.get("id")}
    if isinstance(result, RecordsResult):
        return {"count": len(result.data)}
    if isinstance(result, IdsResult):
        return {"ids": list(result.data)}
    return {"type": type(result).__name__}


class LoggingMiddleware:
    """Logs every operation before dispatch and after it resolves or fails.

    Errors are re-raised unchanged.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    def __call__(self, operation: str, call_next: OperationCall) -> OperationCall:
        log = self.log

        async def logged(resource: str, params: Any) -> Any:
            context = {"operation": operation, "resource": resource}
            log.info(
                f"[DataProvider] {operation}: {resource}",
                extra={**context, "params": describe_params(params)},
            )
            try:
                result = await call_next(resource, params)
            except Exception as e:
                log.error(
                    f"[DataProvider] {operation}: {resource} error",
                    extra={**context, "error": str(e), "error_type": type(e).__name__},
                )
                raise
            log.info(
                f"[DataProvider] {operation}: {resource} success",
                extra={**context, "result": summarize_result(result)},
            )
            return result

        return logged


# ============================================================================
# Caching
# ============================================================================


def _params_key(params: Any) -> str:
    if isinstance(params, BaseModel):
        params = params.model_dump(mode="json")
    return json.dumps(params, sort_keys=True, default=str)


class CachingMiddleware:
    """TTL cache for read operations, invalidated per resource on any write.

    Each resource carries a generation counter bumped by writes; a read that
    started before a write does not store its (possibly stale) result.

    Storing an entry first drops every expired one; at most ``max_entries``
    are kept, evicting the oldest stored.
    """

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 1024,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[tuple[str, str, str], tuple[float, Any]] = {}
        self._generations: dict[str, int] = {}

    def get(self, key: tuple[str, str, str]) -> Any | None:
        item = self._entries.get(key)
        if item is None:
            return None
        expiry, value = item
        if self._clock() >= expiry:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: tuple[str, str, str], value: Any) -> None:
        now = self._clock()
        self.purge_expired(now)
        # Re-inserting moves the key to the end of the eviction order
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]
        self._entries[key] = (now + self.ttl_seconds, value)

    def purge_expired(self, now: float | None = None) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock() if now is None else now
        expired = [key for key, (expiry, _) in self._entries.items() if now >= expiry]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def invalidate(self, resource: str) -> None:
        self._generations[resource] = self._generations.get(resource, 0) + 1
        for key in [k for k in self._entries if k[0] == resource]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __call__(self, operation: str, call_next: OperationCall) -> OperationCall:
        if operation in READ_OPERATIONS:

            async def cached(resource: str, params: Any) -> Any:
                key = (resource, operation, _params_key(params))
                hit = self.get(key)
                if hit is not None:
                    logger.debug(f"Cache hit for {operation} {resource}")
                    return copy.deepcopy(hit)

                generation = self._generations.get(resource, 0)
                result = await call_next(resource, params)
                if self._generations.get(resource, 0) == generation:
                    self.set(key, copy.deepcopy(result))
                return result

            return cached

        async def invalidating(resource: str, params: Any) -> Any:
            try:
                return await call_next(resource, params)
            finally:
                self.invalidate(resource)

        return invalidating


# ============================================================================
# Metrics
# ============================================================================


class MetricsMiddleware:
    """Records a Prometheus counter and latency histogram per operation."""

    def __init__(self, metrics: Metrics | None = None) -> None:
        self.metrics = metrics or default_metrics

    def __call__(self, operation: str, call_next: OperationCall) -> OperationCall:
        async def measured(resource: str, params: Any) -> Any:
            start = time.perf_counter()
            status = "error"
            try:
                result = await call_next(resource, params)
                status = "success"
                return result
            finally:
                self.metrics.record(operation, resource, status, time.perf_counter() - start)

        return measured
