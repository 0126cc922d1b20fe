from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

from fanout_build.core.dynamic.shapes import as_shape


def dynamic_subvalue(value: Any, index: list[int]) -> Any:
    """Return the slice of ``value`` at the 1-based positions in ``index``.

    - DataFrame: the selected rows, all columns.
    - ndarray: the selected entries of the leading dimension.
    - anything else (DynamicValue included): the selected elements.
    """
    positions = [int(i) - 1 for i in index]
    for p, i in zip(positions, index):
        if p < 0:
            raise IndexError(f"positions are 1-based, got {i}")
    return as_shape(value).subset(positions)


def concat_subvalues(parts: list[Any]) -> Any:
    """Inverse of splitting a value with dynamic_subvalue()."""
    if not parts:
        return []
    first = parts[0]
    if isinstance(first, pd.DataFrame):
        return pd.concat(parts)
    if isinstance(first, pd.Series):
        return pd.concat(parts)
    if isinstance(first, np.ndarray) and first.ndim >= 1:
        return np.concatenate(parts, axis=0)
    out: list[Any] = []
    for part in parts:
        out.extend(part)
    return type(first)(out) if isinstance(first, tuple) else out
