"""
Local (in-memory) data provider.

Reference implementation of the query contract and the development/test
double for the relational backend. Holds one record list per resource,
optionally mirrored to a durable key-value store keyed by resource name:
read-through on first access, write-through after every mutation.

All list mutation happens synchronously after the artificial delay has been
awaited, so concurrent writers on one event loop are serialized and cannot
race on id assignment.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from data_provider.core.errors import BackendOperationFailed, DataProviderError, NotFoundError
from data_provider.domain.enums import Operation, SearchPolicy
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
    UpdateManyParams,
    UpdateParams,
)
from data_provider.providers.base import coerce_id
from data_provider.providers.latency import DelayStrategy, NoDelay
from data_provider.providers.matching import (
    check_query_fields,
    matches_filter,
    matches_search,
    paginate,
    project,
    sort_records,
)
from data_provider.providers.persistence import KeyValueStore
from data_provider.providers.resources import (
    CREATED_AT_FIELD,
    ID_FIELD,
    SERVER_MANAGED_FIELDS,
    UPDATED_AT_FIELD,
    ResourceRegistry,
    default_registry,
)
from data_provider.providers.seed import default_seed_data

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "superadmin-"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LocalDataProvider:
    """In-memory backend with optional durable persistence.

    Args:
        seed_data: Records per resource used when the store has nothing for a
            resource yet. Defaults to the demo records.
        store: Durable key-value store; None keeps everything in memory.
        key_prefix: Prefix of the per-resource key in ``store``.
        delay: Strategy awaited before every operation.
        registry: Field allowlists (projection, writable fields, search).
        search_policy: How search combines with the filter.
        clock: Source of timestamps for created_at/updated_at.
    """

    def __init__(
        self,
        *,
        seed_data: Mapping[str, list[Record]] | None = None,
        store: KeyValueStore | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        delay: DelayStrategy | None = None,
        registry: ResourceRegistry | None = None,
        search_policy: SearchPolicy = SearchPolicy.REPLACE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._seed: dict[str, list[Record]] = (
            default_seed_data() if seed_data is None else copy.deepcopy(dict(seed_data))
        )
        self._store = store
        self._key_prefix = key_prefix
        self._delay = delay or NoDelay()
        self._registry = registry or default_registry
        self._search_policy = search_policy
        self._clock = clock
        self._collections: dict[str, list[Record]] = {}
        self._counters: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def storage_key(self, resource: str) -> str:
        return f"{self._key_prefix}{resource}"

    def _collection(self, resource: str) -> list[Record]:
        records = self._collections.get(resource)
        if records is not None:
            return records

        records = None
        if self._store is not None:
            records = self._store.read(self.storage_key(resource))
        if records is None:
            records = copy.deepcopy(self._seed.get(resource, []))
            if self._store is not None and records:
                self._store.write(self.storage_key(resource), records)

        self._collections[resource] = records
        self._counters[resource] = max(
            (int(r[ID_FIELD]) for r in records if str(r.get(ID_FIELD, "")).isdigit()),
            default=0,
        )
        logger.debug(f"Loaded {len(records)} {resource} records")
        return records

    def _persist(self, resource: str) -> None:
        if self._store is not None:
            self._store.write(self.storage_key(resource), self._collections[resource])

    def _next_id(self, resource: str, records: list[Record]) -> str:
        taken = {coerce_id(r.get(ID_FIELD)) for r in records}
        counter = self._counters.get(resource, 0) + 1
        while str(counter) in taken:
            counter += 1
        self._counters[resource] = counter
        return str(counter)

    @staticmethod
    def _index_of(records: list[Record], id: Any) -> int:
        wanted = coerce_id(id)
        for index, record in enumerate(records):
            if coerce_id(record.get(ID_FIELD)) == wanted:
                return index
        return -1

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    def _writable(self, resource: str, data: Mapping[str, Any]) -> Record:
        fields = self._registry.writable_fields(resource)
        if fields is None:
            allowed = {k: v for k, v in data.items() if k not in SERVER_MANAGED_FIELDS}
        else:
            allowed = {k: v for k, v in data.items() if k in fields}
        return copy.deepcopy(allowed)

    def _output(self, resource: str, record: Record) -> Record:
        return project(copy.deepcopy(record), self._registry.fields(resource))

    @contextmanager
    def _guard(self, resource: str, operation: Operation) -> Iterator[None]:
        try:
            yield
        except DataProviderError:
            raise
        except Exception as e:
            logger.error(
                f"Local {operation.value} failed for {resource}",
                extra={"resource": resource, "operation": operation.value, "error": str(e)},
            )
            raise BackendOperationFailed(resource, operation.value, str(e)) from e

    # ------------------------------------------------------------------
    # Query evaluation
    # ------------------------------------------------------------------

    def _search_active(self, resource: str, search: str | None) -> bool:
        if not search:
            return False
        fields = self._registry.search_fields(resource)
        return fields is None or len(fields) > 0

    def _matches(
        self,
        resource: str,
        record: Record,
        params: ListParams,
        reference: tuple[str, Any] | None,
    ) -> bool:
        if reference is not None:
            target, ref_id = reference
            value = record.get(target)
            if value is None or coerce_id(value) != coerce_id(ref_id):
                return False

        if self._search_active(resource, params.search):
            fields = self._registry.search_fields(resource)
            if fields is None:
                fields = tuple(k for k in record if k not in SERVER_MANAGED_FIELDS)
            if not matches_search(record, params.search, fields):
                return False
            if self._search_policy == SearchPolicy.REPLACE:
                return True

        return matches_filter(record, params.filter)

    def _list(
        self, resource: str, params: ListParams, reference: tuple[str, Any] | None = None
    ) -> ListResult:
        check_query_fields(
            resource,
            self._registry.fields(resource),
            params,
            reference[0] if reference else None,
        )
        records = self._collection(resource)
        pagination = params.resolved_pagination()

        matched = [r for r in records if self._matches(resource, r, params, reference)]
        ordered = sort_records(matched, params.sort)
        page = paginate(ordered, pagination)

        return ListResult.build(
            [self._output(resource, r) for r in page], len(matched), pagination
        )

    # ------------------------------------------------------------------
    # Query contract
    # ------------------------------------------------------------------

    async def get_list(self, resource: str, params: ListParams) -> ListResult:
        await self._delay(Operation.GET_LIST.value)
        with self._guard(resource, Operation.GET_LIST):
            return self._list(resource, params)

    async def get_one(self, resource: str, params: GetOneParams) -> RecordResult:
        await self._delay(Operation.GET_ONE.value)
        with self._guard(resource, Operation.GET_ONE):
            records = self._collection(resource)
            index = self._index_of(records, params.id)
            if index == -1:
                raise NotFoundError(resource, params.id)
            return RecordResult(data=self._output(resource, records[index]))

    async def get_many(self, resource: str, params: GetManyParams) -> RecordsResult:
        await self._delay(Operation.GET_MANY.value)
        with self._guard(resource, Operation.GET_MANY):
            wanted = {coerce_id(id) for id in params.ids}
            records = self._collection(resource)
            return RecordsResult(
                data=[
                    self._output(resource, r)
                    for r in records
                    if coerce_id(r.get(ID_FIELD)) in wanted
                ]
            )

    async def get_many_reference(
        self, resource: str, params: GetManyReferenceParams
    ) -> ListResult:
        await self._delay(Operation.GET_MANY_REFERENCE.value)
        with self._guard(resource, Operation.GET_MANY_REFERENCE):
            return self._list(resource, params, reference=(params.target, params.id))

    async def create(self, resource: str, params: CreateParams) -> RecordResult:
        await self._delay(Operation.CREATE.value)
        with self._guard(resource, Operation.CREATE):
            records = self._collection(resource)
            now = self._timestamp()
            record = {
                ID_FIELD: self._next_id(resource, records),
                **self._writable(resource, params.data),
                CREATED_AT_FIELD: now,
                UPDATED_AT_FIELD: now,
            }
            records.append(record)
            self._persist(resource)

            logger.info(f"Created {resource} record", extra={"resource": resource, "id": record[ID_FIELD]})
            return RecordResult(data=self._output(resource, record))

    async def update(self, resource: str, params: UpdateParams) -> RecordResult:
        await self._delay(Operation.UPDATE.value)
        with self._guard(resource, Operation.UPDATE):
            records = self._collection(resource)
            index = self._index_of(records, params.id)
            if index == -1:
                raise NotFoundError(resource, params.id)

            updated = {
                **records[index],
                **self._writable(resource, params.data),
                UPDATED_AT_FIELD: self._timestamp(),
            }
            records[index] = updated
            self._persist(resource)
            return RecordResult(data=self._output(resource, updated))

    async def update_many(self, resource: str, params: UpdateManyParams) -> IdsResult:
        await self._delay(Operation.UPDATE_MANY.value)
        with self._guard(resource, Operation.UPDATE_MANY):
            records = self._collection(resource)
            changes = self._writable(resource, params.data)
            now = self._timestamp()

            updated_ids = []
            for id in params.ids:
                index = self._index_of(records, id)
                if index == -1:
                    continue
                records[index] = {**records[index], **copy.deepcopy(changes), UPDATED_AT_FIELD: now}
                updated_ids.append(id)

            if updated_ids:
                self._persist(resource)
            return IdsResult(data=updated_ids)

    async def delete(self, resource: str, params: DeleteParams) -> RecordResult:
        await self._delay(Operation.DELETE.value)
        with self._guard(resource, Operation.DELETE):
            records = self._collection(resource)
            index = self._index_of(records, params.id)
            if index == -1:
                raise NotFoundError(resource, params.id)

            deleted = records.pop(index)
            self._persist(resource)

            logger.info(f"Deleted {resource} record", extra={"resource": resource, "id": params.id})
            return RecordResult(data=self._output(resource, deleted))

    async def delete_many(self, resource: str, params: DeleteManyParams) -> IdsResult:
        await self._delay(Operation.DELETE_MANY.value)
        with self._guard(resource, Operation.DELETE_MANY):
            records = self._collection(resource)

            deleted_ids = []
            for id in params.ids:
                index = self._index_of(records, id)
                if index == -1:
                    continue
                records.pop(index)
                deleted_ids.append(id)

            if deleted_ids:
                self._persist(resource)
            return IdsResult(data=deleted_ids)
