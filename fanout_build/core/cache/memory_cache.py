from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Optional, Protocol

from fanout_build.core.dynamic.shapes import value_digest, value_size
from fanout_build.core.errors import CacheMissError
from fanout_build.core.model import CachedMeta


class Cache(Protocol):
    """Read/write contract the dynamic engine needs from a cache."""

    def exists(self, name: str) -> bool: ...

    def get(self, name: str) -> Any: ...

    def get_meta(self, name: str) -> Optional[CachedMeta]: ...

    def set_meta(self, name: str, meta: CachedMeta) -> None: ...

    def get_hash(self, name: str) -> Optional[str]: ...

    def set(self, name: str, value: Any, meta: Optional[CachedMeta] = None) -> CachedMeta: ...

    def mget_by_hash(self, names: list[str]) -> list[Any]: ...

    def recover(self, name: str) -> bool: ...


class MemoryCache:
    """Content-addressable in-process cache.

    Values are stored once per content hash; names point at hashes. Entries
    that get replaced or deleted move into a per-name history so recover()
    can bring them back.
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._meta: dict[str, CachedMeta] = {}
        self._history: dict[str, list[CachedMeta]] = {}
        self._lock = threading.RLock()

    def exists(self, name: str) -> bool:
        return name in self._meta

    def get(self, name: str) -> Any:
        with self._lock:
            meta = self._meta.get(name)
            if meta is None:
                raise CacheMissError(code="E_CACHE_MISSING", message="no cached value", target=name)
            return self._values[meta.hash]

    def get_meta(self, name: str) -> Optional[CachedMeta]:
        return self._meta.get(name)

    def set_meta(self, name: str, meta: CachedMeta) -> None:
        with self._lock:
            if meta.hash not in self._values:
                raise CacheMissError(
                    code="E_CACHE_MISSING",
                    message=f"meta points at unknown hash {meta.hash}",
                    target=name,
                )
            self._meta[name] = meta

    def get_hash(self, name: str) -> Optional[str]:
        meta = self._meta.get(name)
        return meta.hash if meta else None

    def set(self, name: str, value: Any, meta: Optional[CachedMeta] = None) -> CachedMeta:
        h = value_digest(value)
        if meta is None:
            meta = CachedMeta(hash=h, size=value_size(value))
        else:
            meta = replace(meta, hash=h)
        with self._lock:
            self._values.setdefault(h, value)
            old = self._meta.get(name)
            if old is not None and old.hash != h:
                self._history.setdefault(name, []).append(old)
            self._meta[name] = meta
        return meta

    def delete(self, name: str) -> None:
        with self._lock:
            old = self._meta.pop(name, None)
            if old is not None:
                self._history.setdefault(name, []).append(old)

    def mget_by_hash(self, names: list[str]) -> list[Any]:
        with self._lock:
            out: list[Any] = []
            for name in names:
                h = self.get_hash(name)
                if h is None or h not in self._values:
                    raise CacheMissError(code="E_CACHE_MISSING", message="no cached value", target=name)
                out.append(self._values[h])
            return out

    def recover(self, name: str) -> bool:
        """Restore the latest historical entry of ``name``. True on success."""
        with self._lock:
            if name in self._meta:
                return False
            history = self._history.get(name)
            if not history:
                return False
            self._meta[name] = history.pop()
            return True

    def list(self) -> list[str]:
        with self._lock:
            return sorted(self._meta.keys())
