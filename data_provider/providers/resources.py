"""Per-resource field allowlists.

The allowlist doubles as the projection applied to every returned record and
as the set of fields free-text search runs over (minus the identifier and
the timestamps).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

ID_FIELD = "id"
CREATED_AT_FIELD = "created_at"
UPDATED_AT_FIELD = "updated_at"

SERVER_MANAGED_FIELDS = frozenset({ID_FIELD, CREATED_AT_FIELD, UPDATED_AT_FIELD})

RESOURCE_FIELDS: dict[str, tuple[str, ...]] = {
    "users": (
        "id",
        "name",
        "email",
        "role",
        "status",
        "created_at",
        "updated_at",
        "avatar",
        "phone",
        "department",
        "last_login",
    ),
    "posts": (
        "id",
        "title",
        "content",
        "author_id",
        "status",
        "published_at",
        "tags",
        "category",
        "read_time",
        "views",
        "likes",
        "created_at",
        "updated_at",
    ),
    "products": (
        "id",
        "name",
        "description",
        "price",
        "category",
        "in_stock",
        "stock",
        "rating",
        "image",
        "created_at",
        "updated_at",
    ),
    "categories": ("id", "name", "description", "created_at", "updated_at"),
}


class ResourceRegistry:
    """Lookup of field allowlists by resource name."""

    def __init__(self, fields: Mapping[str, Iterable[str]] | None = None) -> None:
        source = RESOURCE_FIELDS if fields is None else fields
        self._fields: dict[str, tuple[str, ...]] = {
            name: tuple(columns) for name, columns in source.items()
        }

    def __contains__(self, resource: object) -> bool:
        return resource in self._fields

    def resources(self) -> list[str]:
        return list(self._fields)

    def fields(self, resource: str) -> tuple[str, ...] | None:
        """Allowlist for ``resource``, or None when the resource is unregistered."""
        return self._fields.get(resource)

    def search_fields(self, resource: str) -> tuple[str, ...] | None:
        fields = self.fields(resource)
        if fields is None:
            return None
        return tuple(f for f in fields if f not in SERVER_MANAGED_FIELDS)

    def writable_fields(self, resource: str) -> tuple[str, ...] | None:
        return self.search_fields(resource)


default_registry = ResourceRegistry()
