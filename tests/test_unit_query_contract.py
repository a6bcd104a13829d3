"""
Unit tests for the query contract models.

Tests cover:
- Lenient pagination normalization
- Skip computation
- total_pages computation (including empty results)
- camelCase aliases on input
- Sort order normalization
"""

import pytest

from data_provider.domain.enums import SortOrder
from data_provider.domain.query import (
    DEFAULT_PAGE,
    DEFAULT_PER_PAGE,
    GetManyReferenceParams,
    ListParams,
    ListResult,
    Pagination,
    Sort,
    UpdateParams,
)


class TestPagination:
    """Tests for Pagination normalization."""

    @pytest.mark.anyio
    async def test_defaults(self):
        pagination = Pagination()
        assert pagination.page == DEFAULT_PAGE == 1
        assert pagination.per_page == DEFAULT_PER_PAGE == 10

    @pytest.mark.anyio
    @pytest.mark.parametrize("page", [0, -3, None, "abc"])
    async def test_invalid_page_normalized(self, page):
        """Non-positive or non-numeric pages fall back to page 1."""
        assert Pagination(page=page, per_page=5).page == 1

    @pytest.mark.anyio
    @pytest.mark.parametrize("per_page", [0, -1, None, "many"])
    async def test_invalid_per_page_normalized(self, per_page):
        assert Pagination(page=2, per_page=per_page).per_page == 10

    @pytest.mark.anyio
    async def test_numeric_strings_accepted(self):
        pagination = Pagination(page="3", per_page="25")
        assert (pagination.page, pagination.per_page) == (3, 25)

    @pytest.mark.anyio
    async def test_skip(self):
        assert Pagination(page=1, per_page=10).skip == 0
        assert Pagination(page=3, per_page=7).skip == 14

    @pytest.mark.anyio
    async def test_camel_case_alias(self):
        pagination = Pagination.model_validate({"page": 2, "perPage": 5})
        assert pagination.per_page == 5


class TestListParams:
    """Tests for ListParams parsing."""

    @pytest.mark.anyio
    async def test_absent_pagination_resolves_to_defaults(self):
        params = ListParams()
        assert params.pagination is None
        assert params.resolved_pagination() == Pagination(page=1, per_page=10)

    @pytest.mark.anyio
    async def test_null_filter_becomes_empty(self):
        assert ListParams(filter=None).filter == {}

    @pytest.mark.anyio
    async def test_parses_javascript_shaped_payload(self):
        params = ListParams.model_validate(
            {
                "pagination": {"page": 2, "perPage": 20},
                "sort": {"field": "name", "order": "desc"},
                "filter": {"role": "admin", "ids": [1, 2]},
                "search": "jo",
            }
        )
        assert params.resolved_pagination().per_page == 20
        assert params.sort == Sort(field="name", order=SortOrder.DESC)
        assert params.filter == {"role": "admin", "ids": [1, 2]}
        assert params.search == "jo"

    @pytest.mark.anyio
    async def test_signal_excluded_from_dump(self):
        params = ListParams(signal=object())
        assert "signal" not in params.model_dump()

    @pytest.mark.anyio
    async def test_reference_params_extend_list_params(self):
        params = GetManyReferenceParams(target="author_id", id=1, search="x")
        assert isinstance(params, ListParams)
        assert params.target == "author_id"

    @pytest.mark.anyio
    async def test_update_params_previous_data_alias(self):
        params = UpdateParams.model_validate(
            {"id": "1", "data": {"name": "x"}, "previousData": {"name": "y"}}
        )
        assert params.previous_data == {"name": "y"}


class TestListResult:
    """Tests for ListResult.build."""

    @pytest.mark.anyio
    async def test_total_pages_rounds_up(self):
        result = ListResult.build([{"id": "1"}], total=21, pagination=Pagination(page=3, per_page=10))
        assert result.total_pages == 3
        assert result.page == 3
        assert result.per_page == 10

    @pytest.mark.anyio
    async def test_total_pages_zero_when_empty(self):
        result = ListResult.build([], total=0, pagination=Pagination())
        assert result.total_pages == 0

    @pytest.mark.anyio
    async def test_exact_multiple(self):
        result = ListResult.build([], total=20, pagination=Pagination(per_page=10))
        assert result.total_pages == 2

    @pytest.mark.anyio
    async def test_dump_by_alias(self):
        result = ListResult.build([], total=0, pagination=Pagination())
        assert "totalPages" in result.model_dump(by_alias=True)
