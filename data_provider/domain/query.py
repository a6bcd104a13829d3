"""Parameter and result shapes of the query contract.

Every backend accepts and returns exactly these models, which is what makes
backends interchangeable behind the factory. Field names are snake_case;
camelCase aliases (``perPage``, ``totalPages``, ``previousData``) are
accepted on input so payloads coming from a JavaScript admin shell
validate unchanged.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, JsonValue, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from data_provider.domain.enums import SortOrder

DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 10

Identifier = str | int
Record = dict[str, Any]


class ContractModel(BaseModel):
    """Base model for all contract shapes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Pagination(ContractModel):
    """Page window. Non-positive or non-numeric values fall back to defaults."""

    page: int = DEFAULT_PAGE
    per_page: int = DEFAULT_PER_PAGE

    @field_validator("page", "per_page", mode="before")
    @classmethod
    def normalize_positive(cls, v: Any, info: ValidationInfo) -> int:
        default = DEFAULT_PAGE if info.field_name == "page" else DEFAULT_PER_PAGE
        try:
            value = int(v)
        except (TypeError, ValueError):
            return default
        return value if value >= 1 else default

    @property
    def skip(self) -> int:
        """Zero-based offset of the first record on this page."""
        return (self.page - 1) * self.per_page


class Sort(ContractModel):
    field: str
    order: SortOrder = SortOrder.ASC

    @field_validator("order", mode="before")
    @classmethod
    def normalize_order(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class ListParams(ContractModel):
    """Query for get_list.

    ``signal`` is accepted for callers that abandon requests; backends never
    consult it.
    """

    pagination: Pagination | None = None
    sort: Sort | None = None
    filter: dict[str, JsonValue] = Field(default_factory=dict)
    search: str | None = None
    signal: Any = Field(default=None, exclude=True)

    @field_validator("filter", mode="before")
    @classmethod
    def default_filter(cls, v: Any) -> Any:
        return {} if v is None else v

    def resolved_pagination(self) -> Pagination:
        return self.pagination or Pagination()


class GetOneParams(ContractModel):
    id: Identifier
    signal: Any = Field(default=None, exclude=True)


class GetManyParams(ContractModel):
    ids: list[Identifier]
    signal: Any = Field(default=None, exclude=True)


class GetManyReferenceParams(ListParams):
    """get_list plus an equality constraint ``{target: id}``."""

    target: str
    id: Identifier


class CreateParams(ContractModel):
    data: Record


class UpdateParams(ContractModel):
    id: Identifier
    data: Record
    previous_data: Record | None = None


class UpdateManyParams(ContractModel):
    ids: list[Identifier]
    data: Record


class DeleteParams(ContractModel):
    id: Identifier
    previous_data: Record | None = None


class DeleteManyParams(ContractModel):
    ids: list[Identifier]


class ListResult(ContractModel):
    data: list[Record]
    total: int
    page: int
    per_page: int
    total_pages: int

    @classmethod
    def build(cls, data: list[Record], total: int, pagination: Pagination) -> ListResult:
        return cls(
            data=data,
            total=total,
            page=pagination.page,
            per_page=pagination.per_page,
            total_pages=math.ceil(total / pagination.per_page),
        )


class RecordResult(ContractModel):
    data: Record


class RecordsResult(ContractModel):
    data: list[Record]


class IdsResult(ContractModel):
    data: list[Identifier]
