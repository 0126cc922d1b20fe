from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Sequence
from functools import cached_property
from typing import Any, Union

import numpy as np
import pandas as pd

from fanout_build.core.model import DynamicValue


# Every value a target can produce falls into exactly one of three shapes.
# Hashing, subsetting and trace flattening only talk to the shape, never to
# the concrete type, so adding a shape means touching this module only.


class TableShape:
    """Row-oriented: a pandas DataFrame branches over its rows."""

    kind = "table"

    def __init__(self, value: pd.DataFrame):
        self.value = value

    @property
    def size(self) -> int:
        return len(self.value.index)

    def element(self, i: int) -> Any:
        return self.value.iloc[[i]]

    @cached_property
    def _row_hashes(self) -> np.ndarray:
        return pd.util.hash_pandas_object(self.value, index=False).to_numpy()

    @cached_property
    def _header(self) -> bytes:
        return json.dumps([str(c) for c in self.value.columns]).encode("utf-8")

    def digest(self, i: int) -> str:
        return _digest_bytes(self._header + self._row_hashes[i].tobytes())

    def subset(self, positions: list[int]) -> pd.DataFrame:
        return self.value.iloc[positions]


class ArrayShape:
    """Leading-dimension-oriented: a numpy array branches over axis 0."""

    kind = "array"

    def __init__(self, value: np.ndarray):
        self.value = value

    @property
    def size(self) -> int:
        return int(self.value.shape[0])

    def element(self, i: int) -> Any:
        return self.value[i]

    def digest(self, i: int) -> str:
        return _array_digest(np.asarray(self.value[i]))

    def subset(self, positions: list[int]) -> np.ndarray:
        return np.take(self.value, positions, axis=0)


class SequenceShape:
    """Flat sequence. Scalars, strings and mappings count as one element."""

    kind = "sequence"

    def __init__(self, value: Any):
        self.value = value

    @property
    def size(self) -> int:
        if isinstance(self.value, DynamicValue):
            return len(self.value.payload)
        if isinstance(self.value, pd.Series):
            return len(self.value)
        if _is_scalar(self.value):
            return 1
        return len(self.value)

    def element(self, i: int) -> Any:
        if isinstance(self.value, DynamicValue):
            return self.value.payload[i]
        if isinstance(self.value, pd.Series):
            return self.value.iloc[i]
        if _is_scalar(self.value):
            if i != 0:
                raise IndexError(i)
            return self.value
        return self.value[i]

    def digest(self, i: int) -> str:
        return value_digest(self.element(i))

    def subset(self, positions: list[int]) -> Any:
        if isinstance(self.value, pd.Series):
            return self.value.iloc[positions]
        picked = [self.element(i) for i in positions]
        if isinstance(self.value, tuple):
            return tuple(picked)
        return picked


Shape = Union[TableShape, ArrayShape, SequenceShape]


def as_shape(value: Any) -> Shape:
    if isinstance(value, pd.DataFrame):
        return TableShape(value)
    if isinstance(value, np.ndarray) and value.ndim >= 1:
        return ArrayShape(value)
    return SequenceShape(value)


def value_size(value: Any) -> int:
    return as_shape(value).size


def value_digest(value: Any) -> str:
    """Digest of a whole value. Deterministic across processes."""
    if isinstance(value, pd.DataFrame):
        shape = TableShape(value)
        rows = shape._row_hashes.tobytes() if shape.size else b""
        return _digest_bytes(b"table:" + shape._header + rows)
    if isinstance(value, pd.Series):
        return _digest_bytes(b"series:" + pd.util.hash_pandas_object(value, index=False).to_numpy().tobytes())
    if isinstance(value, np.ndarray):
        return _array_digest(value)
    if isinstance(value, DynamicValue):
        return _digest_parts("dynamic", [value_digest(x) for x in value.payload])
    if isinstance(value, (list, tuple)):
        return _digest_parts(type(value).__name__, [value_digest(x) for x in value])
    if isinstance(value, Mapping):
        parts = [f"{k}={value_digest(v)}" for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))]
        return _digest_parts("mapping", parts)
    return _digest_bytes(json.dumps(value, sort_keys=True, default=repr).encode("utf-8"))


def element_digests(value: Any) -> list[str]:
    shape = as_shape(value)
    return [shape.digest(i) for i in range(shape.size)]


def short_hash(key: str) -> str:
    """Short fixed-width digest used in sub-target names (8 hex chars)."""
    return hashlib.blake2b(key.encode("utf-8"), digest_size=4).hexdigest()


def _is_scalar(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray, Mapping)):
        return True
    return not isinstance(value, Sequence)


def _array_digest(arr: np.ndarray) -> str:
    header = f"array:{arr.dtype.str}:{arr.shape}".encode("utf-8")
    if arr.dtype == object:
        return _digest_bytes(header + value_digest(arr.tolist()).encode("utf-8"))
    return _digest_bytes(header + np.ascontiguousarray(arr).tobytes())


def _digest_parts(tag: str, parts: list[str]) -> str:
    return _digest_bytes((tag + ":" + " ".join(parts)).encode("utf-8"))


def _digest_bytes(data: bytes) -> str:
    return hashlib.blake2b(data, digest_size=16).hexdigest()
