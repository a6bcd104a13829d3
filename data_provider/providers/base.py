"""Backend contract.

Every provider implements the nine operations below with identical
observable semantics; callers only ever depend on this protocol.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from data_provider.domain.enums import Operation
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

OPERATION_NAMES: tuple[str, ...] = tuple(op.value for op in Operation)


@runtime_checkable
class DataProvider(Protocol):
    """Protocol for resource backends."""

    async def get_list(self, resource: str, params: ListParams) -> ListResult: ...

    async def get_one(self, resource: str, params: GetOneParams) -> RecordResult: ...

    async def get_many(self, resource: str, params: GetManyParams) -> RecordsResult: ...

    async def get_many_reference(
        self, resource: str, params: GetManyReferenceParams
    ) -> ListResult: ...

    async def create(self, resource: str, params: CreateParams) -> RecordResult: ...

    async def update(self, resource: str, params: UpdateParams) -> RecordResult: ...

    async def update_many(self, resource: str, params: UpdateManyParams) -> IdsResult: ...

    async def delete(self, resource: str, params: DeleteParams) -> RecordResult: ...

    async def delete_many(self, resource: str, params: DeleteManyParams) -> IdsResult: ...


def coerce_id(value: Any) -> str:
    """Coerce an identifier to the storage-native string form."""
    return str(value)
