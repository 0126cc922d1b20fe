from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any, Optional

from fanout_build.core.cache.memory_cache import Cache
from fanout_build.core.dynamic.hashing import get_dynamic_size, read_dynamic_hashes
from fanout_build.core.dynamic.index import group_positions
from fanout_build.core.dynamic.shapes import as_shape, value_size
from fanout_build.core.dynamic.spec import Combine, Cross, DynamicSpec, Map, which_by
from fanout_build.core.dynamic.subvalue import dynamic_subvalue
from fanout_build.core.errors import CacheMissError
from fanout_build.core.model import DynamicValue, Layout

if TYPE_CHECKING:
    from fanout_build.core.session.session import BuildSession


def get_trace(trace: str, value: Any) -> Optional[Any]:
    """Trace ``trace`` of a dynamic target's value, or None if it has none."""
    if isinstance(value, DynamicValue) and value.trace:
        return value.trace.get(trace)
    return None


def read_trace(trace: str, target: str, cache: Cache) -> Optional[Any]:
    """Like get_trace(), reading the target's value from the cache."""
    return get_trace(trace, cache.get(target))


def subtargets(target: str, cache: Cache) -> list[str]:
    """Names of the sub-targets recorded for a built dynamic target."""
    meta = cache.get_meta(target)
    if meta is None:
        raise CacheMissError(code="E_CACHE_MISSING", message="no cached value", target=target)
    return list(meta.subtargets or [])


def append_trace(target: str, value: DynamicValue, session: BuildSession) -> DynamicValue:
    layout = session.layout[target]
    if not layout.deps_dynamic_trace or layout.dynamic is None:
        return value
    value.trace = get_trace_impl(layout.dynamic, layout, session)
    return value


def get_trace_impl(dynamic: DynamicSpec, layout: Layout, session: BuildSession) -> dict[str, Any]:
    """Trace values aligned with the registered sub-targets, one per sub-target
    (one per group for combine). Sub-targets cut off by max_expand get none."""
    n = len(layout.subtargets)

    if isinstance(dynamic, Map):
        return {key: _leading(chr_dynamic(session.value_of(key)), n) for key in layout.deps_dynamic_trace}

    if isinstance(dynamic, Cross):
        sizes = [get_dynamic_size(dep, session) for dep in layout.deps_dynamic]
        rows = list(itertools.islice(itertools.product(*(range(1, s + 1) for s in sizes)), n))
        out: dict[str, Any] = {}
        for key in layout.deps_dynamic_trace:
            col = layout.deps_dynamic.index(key)
            shape = as_shape(chr_dynamic(session.value_of(key)))
            out[key] = [shape.element(row[col] - 1) for row in rows]
        return out

    if isinstance(dynamic, Combine):
        by = which_by(dynamic)
        if by is None:
            return {}
        firsts = [g[0] for g in group_positions(read_dynamic_hashes(by, session))][:n]
        return {by: chr_dynamic(dynamic_subvalue(session.value_of(by), firsts))}

    raise TypeError(f"unsupported dynamic spec: {dynamic!r}")


def _leading(value: Any, n: int) -> Any:
    if value_size(value) <= n:
        return value
    return dynamic_subvalue(value, list(range(1, n + 1)))


def chr_dynamic(x: Any) -> Any:
    if isinstance(x, DynamicValue):
        return list(x.payload)
    return x
