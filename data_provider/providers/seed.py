"""Demo records loaded into an empty local store and by the setup script."""

from __future__ import annotations

import copy
from typing import Any

DEFAULT_SEED_DATA: dict[str, list[dict[str, Any]]] = {
    "users": [
        {
            "id": "1",
            "name": "John Doe",
            "email": "john@example.com",
            "role": "admin",
            "status": "active",
            "department": "Engineering",
            "created_at": "2024-01-01T00:00:00+00:00",
            "updated_at": "2024-01-01T00:00:00+00:00",
        },
        {
            "id": "2",
            "name": "Jane Smith",
            "email": "jane@example.com",
            "role": "user",
            "status": "active",
            "department": "Marketing",
            "created_at": "2024-01-02T00:00:00+00:00",
            "updated_at": "2024-01-02T00:00:00+00:00",
        },
        {
            "id": "3",
            "name": "Bob Johnson",
            "email": "bob@example.com",
            "role": "user",
            "status": "inactive",
            "department": "Design",
            "created_at": "2024-01-03T00:00:00+00:00",
            "updated_at": "2024-01-03T00:00:00+00:00",
        },
    ],
    "posts": [
        {
            "id": "1",
            "title": "First Post",
            "content": "This is the first post content",
            "author_id": "1",
            "status": "published",
            "category": "Development",
            "tags": ["intro"],
            "views": 120,
            "likes": 10,
            "created_at": "2024-01-01T00:00:00+00:00",
            "updated_at": "2024-01-01T00:00:00+00:00",
        },
        {
            "id": "2",
            "title": "Second Post",
            "content": "This is the second post content",
            "author_id": "2",
            "status": "draft",
            "category": "Marketing",
            "tags": [],
            "views": 0,
            "likes": 0,
            "created_at": "2024-01-02T00:00:00+00:00",
            "updated_at": "2024-01-02T00:00:00+00:00",
        },
        {
            "id": "3",
            "title": "Third Post",
            "content": "This is the third post content",
            "author_id": "1",
            "status": "published",
            "category": "Engineering",
            "tags": ["python"],
            "views": 45,
            "likes": 3,
            "created_at": "2024-01-03T00:00:00+00:00",
            "updated_at": "2024-01-03T00:00:00+00:00",
        },
    ],
    "products": [
        {
            "id": "1",
            "name": "Product A",
            "price": 99.99,
            "category": "electronics",
            "in_stock": True,
            "stock": 12,
            "created_at": "2024-01-01T00:00:00+00:00",
            "updated_at": "2024-01-01T00:00:00+00:00",
        },
        {
            "id": "2",
            "name": "Product B",
            "price": 149.99,
            "category": "clothing",
            "in_stock": False,
            "stock": 0,
            "created_at": "2024-01-02T00:00:00+00:00",
            "updated_at": "2024-01-02T00:00:00+00:00",
        },
        {
            "id": "3",
            "name": "Product C",
            "price": 29.99,
            "category": "books",
            "in_stock": True,
            "stock": 40,
            "created_at": "2024-01-03T00:00:00+00:00",
            "updated_at": "2024-01-03T00:00:00+00:00",
        },
    ],
    "categories": [
        {"id": "1", "name": "Development", "description": "Software development and programming topics"},
        {"id": "2", "name": "Design", "description": "UI/UX design and creative topics"},
        {"id": "3", "name": "Marketing", "description": "Digital marketing and growth topics"},
        {"id": "4", "name": "Engineering", "description": "Engineering and technical topics"},
    ],
}


def default_seed_data() -> dict[str, list[dict[str, Any]]]:
    """Deep copy of the demo records, safe to mutate."""
    return copy.deepcopy(DEFAULT_SEED_DATA)
