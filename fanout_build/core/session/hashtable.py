from __future__ import annotations

import threading
from typing import Any, Hashable


class HashTable:
    """Session-scoped set/map used for O(1) memo lookups. Never persisted."""

    def __init__(self) -> None:
        self._data: dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    def exists(self, key: Hashable) -> bool:
        return key in self._data

    def set(self, key: Hashable, value: Any = True) -> None:
        with self._lock:
            self._data[key] = value

    def get(self, key: Hashable, default: Any = None) -> Any:
        return self._data.get(key, default)

    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._data.keys())

    def reset(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
