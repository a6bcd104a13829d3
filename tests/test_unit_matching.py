"""
Unit tests for in-memory query evaluation.

Tests cover:
- Per-value matching (substring, membership, equality)
- Blank filter values
- Search across fields
- Stable sorting, missing values and mixed value types
- Field allowlist checks for filter, sort and reference target
- Pagination slicing and projection
"""

import pytest

from data_provider.domain.enums import SortOrder
from data_provider.domain.query import ListParams, Pagination, Sort
from data_provider.providers.matching import (
    as_text,
    check_query_fields,
    is_blank,
    matches_filter,
    matches_search,
    matches_value,
    paginate,
    project,
    sort_records,
)


class TestMatchesValue:
    """Tests for matches_value."""

    @pytest.mark.anyio
    async def test_string_is_case_insensitive_substring(self):
        assert matches_value("Alice Smith", "ali")
        assert matches_value("MALICE", "Alic")
        assert not matches_value("Bob", "ali")

    @pytest.mark.anyio
    async def test_string_against_number(self):
        assert matches_value(1234, "23")

    @pytest.mark.anyio
    async def test_string_against_missing_value(self):
        assert not matches_value(None, "none")

    @pytest.mark.anyio
    async def test_list_is_membership(self):
        assert matches_value("admin", ["admin", "owner"])
        assert not matches_value("user", ["admin", "owner"])

    @pytest.mark.anyio
    async def test_other_types_use_equality(self):
        assert matches_value(10, 10)
        assert matches_value(True, True)
        assert not matches_value(False, True)


class TestMatchesFilter:
    """Tests for matches_filter."""

    @pytest.mark.anyio
    async def test_all_constraints_must_hold(self):
        record = {"name": "Alice", "role": "admin", "age": 30}
        assert matches_filter(record, {"name": "ali", "role": ["admin"], "age": 30})
        assert not matches_filter(record, {"name": "ali", "age": 31})

    @pytest.mark.anyio
    @pytest.mark.parametrize("blank", [None, ""])
    async def test_blank_values_ignored(self, blank):
        assert is_blank(blank)
        assert matches_filter({"name": "Bob"}, {"name": blank})

    @pytest.mark.anyio
    async def test_zero_and_false_are_not_blank(self):
        assert not is_blank(0)
        assert not is_blank(False)
        assert not matches_filter({"stock": 3}, {"stock": 0})


class TestMatchesSearch:
    """Tests for matches_search."""

    @pytest.mark.anyio
    async def test_any_field_matches(self):
        record = {"name": "Bob", "email": "bob@JOHNSON.io"}
        assert matches_search(record, "john", ["name", "email"])

    @pytest.mark.anyio
    async def test_only_listed_fields_considered(self):
        record = {"name": "Bob", "email": "john@example.com"}
        assert not matches_search(record, "john", ["name"])

    @pytest.mark.anyio
    async def test_text_form_of_structured_values(self):
        assert as_text(True) == "true"
        assert as_text(["a", "b"]) == '["a", "b"]'


class TestSortRecords:
    """Tests for sort_records."""

    @pytest.mark.anyio
    async def test_descending_prices(self):
        records = [{"price": 10}, {"price": 30}, {"price": 20}]
        ordered = sort_records(records, Sort(field="price", order=SortOrder.DESC))
        assert [r["price"] for r in ordered] == [30, 20, 10]

    @pytest.mark.anyio
    async def test_stable_for_equal_keys(self):
        records = [{"id": "a", "k": 1}, {"id": "b", "k": 0}, {"id": "c", "k": 1}]
        asc = sort_records(records, Sort(field="k"))
        desc = sort_records(records, Sort(field="k", order=SortOrder.DESC))
        assert [r["id"] for r in asc] == ["b", "a", "c"]
        assert [r["id"] for r in desc] == ["a", "c", "b"]

    @pytest.mark.anyio
    async def test_missing_values_last_ascending_first_descending(self):
        records = [{"id": "1", "v": 2}, {"id": "2"}, {"id": "3", "v": 1}]
        asc = sort_records(records, Sort(field="v"))
        desc = sort_records(records, Sort(field="v", order=SortOrder.DESC))
        assert [r["id"] for r in asc] == ["3", "1", "2"]
        assert [r["id"] for r in desc] == ["2", "1", "3"]

    @pytest.mark.anyio
    async def test_mixed_types_ranked_numbers_then_strings(self):
        records = [{"v": 3}, {"v": "b"}, {"v": None}, {"v": 1}, {"v": "a"}, {"v": [0]}]
        asc = sort_records(records, Sort(field="v"))
        desc = sort_records(records, Sort(field="v", order=SortOrder.DESC))
        assert [r["v"] for r in asc] == [1, 3, "a", "b", [0], None]
        assert [r["v"] for r in desc] == [None, [0], "b", "a", 3, 1]

    @pytest.mark.anyio
    async def test_no_sort_returns_copy(self):
        records = [{"id": "1"}]
        ordered = sort_records(records, None)
        assert ordered == records
        assert ordered is not records


class TestPaginateAndProject:
    """Tests for paginate and project."""

    @pytest.mark.anyio
    async def test_paginate_slices_window(self):
        records = [{"id": str(i)} for i in range(25)]
        page = paginate(records, Pagination(page=3, per_page=10))
        assert [r["id"] for r in page] == [str(i) for i in range(20, 25)]

    @pytest.mark.anyio
    async def test_paginate_past_end_is_empty(self):
        assert paginate([{"id": "1"}], Pagination(page=5, per_page=10)) == []

    @pytest.mark.anyio
    async def test_project_restricts_fields(self):
        record = {"id": "1", "name": "x", "password_hash": "secret"}
        assert project(record, ("id", "name", "email")) == {"id": "1", "name": "x"}

    @pytest.mark.anyio
    async def test_project_without_allowlist_copies(self):
        record = {"id": "1", "anything": 1}
        projected = project(record, None)
        assert projected == record
        assert projected is not record


class TestCheckQueryFields:
    """Tests for check_query_fields."""

    FIELDS = ("id", "name", "email")

    @pytest.mark.anyio
    async def test_known_fields_accepted(self):
        params = ListParams(filter={"name": "a"}, sort=Sort(field="email"))
        check_query_fields("users", self.FIELDS, params, "id")

    @pytest.mark.anyio
    async def test_unknown_filter_field(self):
        with pytest.raises(KeyError, match="Unknown field 'nickname' on users"):
            check_query_fields("users", self.FIELDS, ListParams(filter={"nickname": "x"}))

    @pytest.mark.anyio
    async def test_unknown_sort_field(self):
        with pytest.raises(KeyError, match="nickname"):
            check_query_fields("users", self.FIELDS, ListParams(sort=Sort(field="nickname")))

    @pytest.mark.anyio
    async def test_unknown_reference_target(self):
        with pytest.raises(KeyError, match="author_id"):
            check_query_fields("users", self.FIELDS, ListParams(), "author_id")

    @pytest.mark.anyio
    async def test_blank_unknown_filter_ignored(self):
        check_query_fields("users", self.FIELDS, ListParams(filter={"nickname": ""}))

    @pytest.mark.anyio
    async def test_no_allowlist_accepts_anything(self):
        params = ListParams(filter={"anything": 1}, sort=Sort(field="other"))
        check_query_fields("notes", None, params, "owner_id")
