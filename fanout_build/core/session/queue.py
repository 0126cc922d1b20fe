from __future__ import annotations

import threading
from typing import Iterable, Optional


class ExecutionQueue:
    """Targets waiting to build, keyed by their count of outstanding deps.

    A target is ready once its key drops to zero. Insertion order breaks ties
    between ready targets.
    """

    def __init__(self) -> None:
        self._keys: dict[str, int] = {}
        self._lock = threading.Lock()

    def push(self, targets: Iterable[str], ndeps: int) -> None:
        with self._lock:
            for t in targets:
                self._keys[t] = max(0, int(ndeps))

    def pop0(self) -> Optional[str]:
        """Remove and return the first ready target, if any."""
        with self._lock:
            for t, key in self._keys.items():
                if key <= 0:
                    del self._keys[t]
                    return t
        return None

    def decrease_key(self, targets: Iterable[str]) -> None:
        with self._lock:
            for t in targets:
                if t in self._keys:
                    self._keys[t] = max(0, self._keys[t] - 1)

    def increase_key(self, targets: Iterable[str]) -> None:
        with self._lock:
            for t in targets:
                if t in self._keys:
                    self._keys[t] += 1

    def key(self, target: str) -> Optional[int]:
        return self._keys.get(target)

    def list(self) -> list[str]:
        with self._lock:
            return list(self._keys.keys())

    def empty(self) -> bool:
        return not self._keys

    def __contains__(self, target: object) -> bool:
        return target in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class RemainingCounter:
    """Total unfinished work in the session."""

    def __init__(self, remaining: int = 0) -> None:
        self._remaining = remaining
        self._lock = threading.Lock()

    @property
    def remaining(self) -> int:
        return self._remaining

    def increase(self, n: int) -> None:
        with self._lock:
            self._remaining += n

    def decrease(self, n: int = 1) -> None:
        with self._lock:
            self._remaining = max(0, self._remaining - n)
