"""
Relational data provider backed by the SQLAlchemy async ORM.

Translates the query contract into SELECT/COUNT/INSERT/UPDATE/DELETE
statements against one mapped table per resource:

- filter  -> WHERE criteria (ILIKE for strings, IN for lists, = otherwise)
- search  -> OR of ILIKE over the resource allowlist (minus id/timestamps)
- sort    -> ORDER BY, with created_at/id appended as tie-breakers
- allowlist -> projected column list, so unlisted columns never leak

List queries run the page query and the count query concurrently on two
sessions with the same criteria, so total_pages always agrees with the page.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import String, cast, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from data_provider.core.db import get_async_sessionmaker
from data_provider.core.errors import BackendOperationFailed, DataProviderError, NotFoundError
from data_provider.db.models import Base, model_registry
from data_provider.domain.enums import Operation, SearchPolicy, SortOrder
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
    Record,
    RecordResult,
    RecordsResult,
    Sort,
    UpdateManyParams,
    UpdateParams,
)
from data_provider.providers.matching import check_query_fields, is_blank
from data_provider.providers.resources import (
    CREATED_AT_FIELD,
    ID_FIELD,
    SERVER_MANAGED_FIELDS,
    UPDATED_AT_FIELD,
    ResourceRegistry,
    default_registry,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Clause builders
# ============================================================================


def resolve_column(model: type[Base], field: str) -> Any:
    """Return the table column for ``field``.

    Raises:
        KeyError: If the table has no such column
    """
    column = model.__table__.columns.get(field)
    if column is None:
        raise KeyError(f"Unknown field '{field}' on {model.__tablename__}")
    return column


def to_native(column: Any, value: Any) -> Any:
    """Coerce a value to the column's storage type where identifiers are strings."""
    if isinstance(column.type, String) and not isinstance(value, str):
        return str(value)
    return value


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_insensitive(column: Any, value: str) -> ColumnElement[bool]:
    """Case-insensitive substring match; non-text columns are cast to text."""
    target = column if isinstance(column.type, String) else cast(column, String)
    return target.ilike(f"%{_escape_like(value)}%", escape="\\")


def build_where_clause(model: type[Base], filters: Mapping[str, Any]) -> list[ColumnElement[bool]]:
    """AND-ed criteria for a filter mapping. Blank values are skipped."""
    criteria: list[ColumnElement[bool]] = []
    for field, value in filters.items():
        if is_blank(value):
            continue
        column = resolve_column(model, field)
        if isinstance(value, str):
            criteria.append(contains_insensitive(column, value))
        elif isinstance(value, list):
            native = [to_native(column, v) for v in value] if column.primary_key else value
            criteria.append(column.in_(native))
        else:
            criteria.append(column == (to_native(column, value) if column.primary_key else value))
    return criteria


def build_search_clause(
    model: type[Base], fields: Iterable[str], search: str | None
) -> ColumnElement[bool] | None:
    """OR of substring matches over ``fields``; None when nothing to search."""
    if not search:
        return None
    conditions = [contains_insensitive(resolve_column(model, field), search) for field in fields]
    if not conditions:
        return None
    return or_(*conditions)


def build_order_by(model: type[Base], sort: Sort | None) -> list[Any]:
    """ORDER BY for ``sort``; empty when no sort was requested.

    NULLs go last ascending and first descending on every engine.
    """
    if sort is None:
        return []
    column = resolve_column(model, sort.field)
    if sort.order == SortOrder.DESC:
        return [column.desc().nulls_first()]
    return [column.asc().nulls_last()]


def tie_breakers(model: type[Base], sort: Sort | None) -> list[Any]:
    """Insertion-order tie-breakers keeping pagination stable for equal keys."""
    columns = model.__table__.columns
    sorted_field = sort.field if sort else None
    return [
        columns[name].asc()
        for name in (CREATED_AT_FIELD, ID_FIELD)
        if name in columns and name != sorted_field
    ]


def build_select(model: type[Base], fields: Iterable[str]) -> list[Any]:
    """Projected column list restricted to the allowlist."""
    return [resolve_column(model, field) for field in fields]


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Provider
# ============================================================================


class RelationalDataProvider:
    """Query-contract backend over an async SQLAlchemy session factory.

    Args:
        sessionmaker: Session factory; defaults to the process-wide one built
            from ``DATABASE_URL`` on first use.
        registry: Field allowlists per resource.
        models: Mapped classes keyed by resource name.
        search_policy: How search combines with the filter.
        clock: Source of created_at/updated_at timestamps.
    """

    def __init__(
        self,
        *,
        sessionmaker: async_sessionmaker[AsyncSession] | None = None,
        registry: ResourceRegistry | None = None,
        models: Mapping[str, type[Base]] | None = None,
        search_policy: SearchPolicy = SearchPolicy.REPLACE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._registry = registry or default_registry
        self._models = dict(models) if models is not None else model_registry()
        self._search_policy = search_policy
        self._clock = clock

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            self._sessionmaker = get_async_sessionmaker()
        return self._sessionmaker

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _model(self, resource: str) -> type[Base]:
        model = self._models.get(resource)
        if model is None:
            raise LookupError(f"No table mapped for resource '{resource}'")
        return model

    def _fields(self, resource: str) -> tuple[str, ...]:
        return self._registry.fields(resource) or (ID_FIELD,)

    def _writable(self, resource: str, model: type[Base], data: Mapping[str, Any]) -> Record:
        allowed = self._registry.writable_fields(resource)
        columns = model.__table__.columns
        return {
            k: v
            for k, v in data.items()
            if k in columns
            and k not in SERVER_MANAGED_FIELDS
            and (allowed is None or k in allowed)
        }

    @staticmethod
    def _to_record(instance: Base, fields: Iterable[str]) -> Record:
        return {field: getattr(instance, field) for field in fields}

    @asynccontextmanager
    async def _translate_errors(self, resource: str, operation: Operation) -> AsyncIterator[None]:
        try:
            yield
        except DataProviderError:
            raise
        except Exception as e:
            logger.error(
                f"Error during {operation.value} on {resource}: {e}",
                extra={"resource": resource, "operation": operation.value},
            )
            raise BackendOperationFailed(resource, operation.value, str(e)) from e

    @asynccontextmanager
    async def _transaction(self, resource: str, operation: Operation) -> AsyncIterator[AsyncSession]:
        async with self._translate_errors(resource, operation):
            async with self.sessionmaker() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

    async def _fetch_rows(self, stmt: Any) -> list[Record]:
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    async def _fetch_count(self, stmt: Any) -> int:
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def _fetch_page_and_count(
        self, page_stmt: Any, count_stmt: Any
    ) -> tuple[list[Record], int]:
        """Run both queries concurrently; a failure in one cancels the other."""
        try:
            async with asyncio.TaskGroup() as tg:
                rows_task = tg.create_task(self._fetch_rows(page_stmt))
                count_task = tg.create_task(self._fetch_count(count_stmt))
        except ExceptionGroup as eg:
            raise eg.exceptions[0]
        return rows_task.result(), count_task.result()

    def _criteria(
        self,
        resource: str,
        model: type[Base],
        params: ListParams,
        reference: tuple[str, Any] | None,
    ) -> list[ColumnElement[bool]]:
        criteria: list[ColumnElement[bool]] = []
        if reference is not None:
            target, ref_id = reference
            column = resolve_column(model, target)
            criteria.append(column == to_native(column, ref_id))

        search_clause = build_search_clause(
            model, self._registry.search_fields(resource) or (), params.search
        )
        if search_clause is None:
            criteria.extend(build_where_clause(model, params.filter))
            return criteria

        criteria.append(search_clause)
        if self._search_policy == SearchPolicy.AND:
            criteria.extend(build_where_clause(model, params.filter))
        return criteria

    async def _list(
        self,
        resource: str,
        params: ListParams,
        operation: Operation,
        reference: tuple[str, Any] | None = None,
    ) -> ListResult:
        async with self._translate_errors(resource, operation):
            model = self._model(resource)
            check_query_fields(
                resource,
                self._registry.fields(resource),
                params,
                reference[0] if reference else None,
            )
            pagination = params.resolved_pagination()
            criteria = self._criteria(resource, model, params, reference)

            page_stmt = (
                select(*build_select(model, self._fields(resource)))
                .where(*criteria)
                .order_by(*build_order_by(model, params.sort), *tie_breakers(model, params.sort))
                .offset(pagination.skip)
                .limit(pagination.per_page)
            )
            count_stmt = select(func.count()).select_from(model).where(*criteria)

            rows, total = await self._fetch_page_and_count(page_stmt, count_stmt)

        logger.debug(f"Fetched {len(rows)} of {total} {resource} records")
        return ListResult.build(rows, total, pagination)

    # ------------------------------------------------------------------
    # Query contract
    # ------------------------------------------------------------------

    async def get_list(self, resource: str, params: ListParams) -> ListResult:
        return await self._list(resource, params, Operation.GET_LIST)

    async def get_many_reference(
        self, resource: str, params: GetManyReferenceParams
    ) -> ListResult:
        return await self._list(
            resource,
            params,
            Operation.GET_MANY_REFERENCE,
            reference=(params.target, params.id),
        )

    async def get_one(self, resource: str, params: GetOneParams) -> RecordResult:
        async with self._translate_errors(resource, Operation.GET_ONE):
            model = self._model(resource)
            id_column = resolve_column(model, ID_FIELD)
            stmt = select(*build_select(model, self._fields(resource))).where(
                id_column == to_native(id_column, params.id)
            )
            rows = await self._fetch_rows(stmt)

        if not rows:
            logger.warning(f"{resource} not found: id={params.id}")
            raise NotFoundError(resource, params.id)
        return RecordResult(data=rows[0])

    async def get_many(self, resource: str, params: GetManyParams) -> RecordsResult:
        async with self._translate_errors(resource, Operation.GET_MANY):
            model = self._model(resource)
            id_column = resolve_column(model, ID_FIELD)
            stmt = (
                select(*build_select(model, self._fields(resource)))
                .where(id_column.in_([to_native(id_column, id) for id in params.ids]))
                .order_by(*tie_breakers(model, None))
            )
            rows = await self._fetch_rows(stmt)
        return RecordsResult(data=rows)

    async def create(self, resource: str, params: CreateParams) -> RecordResult:
        async with self._transaction(resource, Operation.CREATE) as session:
            model = self._model(resource)
            now = self._clock()
            instance = model(
                **self._writable(resource, model, params.data),
                **{CREATED_AT_FIELD: now, UPDATED_AT_FIELD: now},
            )
            session.add(instance)
            await session.flush()
            data = self._to_record(instance, self._fields(resource))

        logger.info(f"Created {resource} record", extra={"resource": resource, "id": data.get(ID_FIELD)})
        return RecordResult(data=data)

    async def update(self, resource: str, params: UpdateParams) -> RecordResult:
        async with self._transaction(resource, Operation.UPDATE) as session:
            model = self._model(resource)
            instance = await session.get(model, to_native(resolve_column(model, ID_FIELD), params.id))
            if instance is None:
                raise NotFoundError(resource, params.id)

            for field, value in self._writable(resource, model, params.data).items():
                setattr(instance, field, value)
            setattr(instance, UPDATED_AT_FIELD, self._clock())
            await session.flush()
            data = self._to_record(instance, self._fields(resource))

        return RecordResult(data=data)

    async def update_many(self, resource: str, params: UpdateManyParams) -> IdsResult:
        async with self._transaction(resource, Operation.UPDATE_MANY) as session:
            model = self._model(resource)
            id_column = resolve_column(model, ID_FIELD)
            wanted = [to_native(id_column, id) for id in params.ids]

            result = await session.execute(select(id_column).where(id_column.in_(wanted)))
            existing = set(result.scalars().all())
            if existing:
                values = {
                    **self._writable(resource, model, params.data),
                    UPDATED_AT_FIELD: self._clock(),
                }
                await session.execute(
                    update(model)
                    .where(id_column.in_(existing))
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

        return IdsResult(data=[id for id in params.ids if to_native(id_column, id) in existing])

    async def delete(self, resource: str, params: DeleteParams) -> RecordResult:
        async with self._transaction(resource, Operation.DELETE) as session:
            model = self._model(resource)
            instance = await session.get(model, to_native(resolve_column(model, ID_FIELD), params.id))
            if instance is None:
                raise NotFoundError(resource, params.id)

            data = self._to_record(instance, self._fields(resource))
            await session.delete(instance)
            await session.flush()

        logger.info(f"Deleted {resource} record", extra={"resource": resource, "id": params.id})
        return RecordResult(data=data)

    async def delete_many(self, resource: str, params: DeleteManyParams) -> IdsResult:
        async with self._transaction(resource, Operation.DELETE_MANY) as session:
            model = self._model(resource)
            id_column = resolve_column(model, ID_FIELD)
            wanted = [to_native(id_column, id) for id in params.ids]

            result = await session.execute(select(id_column).where(id_column.in_(wanted)))
            existing = set(result.scalars().all())
            if existing:
                await session.execute(
                    delete(model)
                    .where(id_column.in_(existing))
                    .execution_options(synchronize_session=False)
                )

        return IdsResult(data=[id for id in params.ids if to_native(id_column, id) in existing])
