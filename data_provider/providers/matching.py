"""In-memory evaluation of filter, search, sort and pagination.

These helpers mirror, value for value, the clauses the relational backend
builds in SQL, so both backends return the same records for the same query.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from data_provider.domain.enums import SortOrder
from data_provider.domain.query import ListParams, Pagination, Record, Sort


def is_blank(value: Any) -> bool:
    """Filter values that impose no constraint."""
    return value is None or value == ""


def as_text(value: Any) -> str:
    """Textual form used for case-insensitive substring matching."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str)
    return str(value)


def contains_ci(value: Any, needle: str) -> bool:
    if value is None:
        return False
    return needle.lower() in as_text(value).lower()


def matches_value(actual: Any, expected: Any) -> bool:
    """Match one field: substring for strings, membership for lists, else equality."""
    if isinstance(expected, str):
        return contains_ci(actual, expected)
    if isinstance(expected, list):
        return actual in expected
    return actual == expected


def matches_filter(record: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    return all(
        matches_value(record.get(field), expected)
        for field, expected in filters.items()
        if not is_blank(expected)
    )


def matches_search(record: Mapping[str, Any], search: str, fields: Iterable[str]) -> bool:
    return any(contains_ci(record.get(field), search) for field in fields)


def check_query_fields(
    resource: str,
    fields: Iterable[str] | None,
    params: ListParams,
    reference_target: str | None = None,
) -> None:
    """Reject filter, sort and reference fields outside the allowlist.

    Blank filter values are skipped, as they impose no constraint. Resources
    without an allowlist accept any field.

    Raises:
        KeyError: For the first unknown field
    """
    if fields is None:
        return
    allowed = set(fields)
    requested = [field for field, value in params.filter.items() if not is_blank(value)]
    if params.sort is not None:
        requested.append(params.sort.field)
    if reference_target is not None:
        requested.append(reference_target)
    for field in requested:
        if field not in allowed:
            raise KeyError(f"Unknown field '{field}' on {resource}")


def _sort_key(field: str):
    # Numbers (bools included) rank before strings, strings before anything else
    def key(record: Mapping[str, Any]) -> tuple[bool, int, Any]:
        value = record.get(field)
        if value is None:
            return (True, 0, 0)
        if isinstance(value, (int, float)):
            return (False, 0, value)
        if isinstance(value, str):
            return (False, 1, value)
        return (False, 2, as_text(value))

    return key


def sort_records(records: list[Record], sort: Sort | None) -> list[Record]:
    """Return a stably sorted copy.

    Missing values sort last ascending and first descending, which is what
    Postgres does by default and what the relational backend requests
    explicitly. A field holding mixed types orders numbers, then strings,
    then everything else by its text form.
    """
    if sort is None:
        return list(records)
    return sorted(records, key=_sort_key(sort.field), reverse=sort.order == SortOrder.DESC)


def paginate(records: list[Record], pagination: Pagination) -> list[Record]:
    start = pagination.skip
    return records[start : start + pagination.per_page]


def project(record: Mapping[str, Any], fields: Iterable[str] | None) -> Record:
    """Restrict ``record`` to ``fields``; no allowlist means no projection."""
    if fields is None:
        return dict(record)
    return {field: record[field] for field in fields if field in record}
