"""Durable key-value stores backing the local provider.

One key per resource; the value is the full JSON-serializable record list.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class KeyValueStore(Protocol):
    """Protocol for persisting record lists by key."""

    def read(self, key: str) -> list[dict[str, Any]] | None: ...
    def write(self, key: str, records: list[dict[str, Any]]) -> None: ...


class MemoryKeyValueStore:
    """In-memory store. Good for tests and short-lived scripts."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def read(self, key: str) -> list[dict[str, Any]] | None:
        raw = self._items.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def write(self, key: str, records: list[dict[str, Any]]) -> None:
        # Stored serialized so callers never share mutable state with the store
        self._items[key] = json.dumps(records, default=str)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileKeyValueStore:
    """Writes each key as a JSON file in a directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def read(self, key: str) -> list[dict[str, Any]] | None:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def write(self, key: str, records: list[dict[str, Any]]) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(records, default=str), encoding="utf-8")
        os.replace(tmp_path, path)
        logger.debug(f"Persisted {len(records)} records to {path}")

    def keys(self) -> list[str]:
        return sorted(path.stem for path in self.directory.glob("*.json"))
