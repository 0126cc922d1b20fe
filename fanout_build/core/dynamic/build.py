from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from fanout_build.core.dynamic.hashing import dynamic_hashes
from fanout_build.core.dynamic.index import subtarget_deps
from fanout_build.core.dynamic.shapes import value_size
from fanout_build.core.dynamic.spec import Combine, which_by
from fanout_build.core.dynamic.subvalue import dynamic_subvalue
from fanout_build.core.dynamic.trace import append_trace
from fanout_build.core.errors import DynamicBranchError
from fanout_build.core.model import CachedMeta, DynamicValue

if TYPE_CHECKING:
    from fanout_build.core.session.session import BuildSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DynamicBuild:
    target: str
    value: DynamicValue
    meta: CachedMeta


def dynamic_build(target: str, session: BuildSession) -> DynamicBuild:
    """Assemble the value of a dynamic target whose sub-targets are all done.

    Sub-target values are read from the cache by content hash rather than
    from memory, since sub-targets may have been built by other workers.
    """
    subtargets = list(session.layout[target].subtargets)
    payload = session.cache.mget_by_hash(subtargets)
    value = append_trace(target, DynamicValue(payload=list(payload)), session)
    meta = CachedMeta(
        hash="",  # filled in by the cache
        size=len(subtargets),
        dynamic_hashes=[session.cache.get_hash(s) or "" for s in subtargets],
        subtargets=subtargets,
    )
    return DynamicBuild(target=target, value=value, meta=meta)


def store_target(
    target: str, value: Any, session: BuildSession, meta: Optional[CachedMeta] = None
) -> CachedMeta:
    """Write a built value through the cache and keep it in memory.

    Element hashes are computed right away for targets that some dynamic
    target branches over, so naming does not have to reload the value.
    """
    if meta is None and session.is_dynamic_dep(target):
        meta = CachedMeta(
            hash="",
            size=value_size(value),
            dynamic_hashes=dynamic_hashes(value, session.config.jobs_preprocess),
        )
    stored = session.cache.set(target, value, meta)
    with session.lock:
        session.targets[target] = value
    logger.debug("stored %s (%d elements)", target, stored.size)
    return stored


def load_subtarget_deps(subtarget: str, session: BuildSession) -> dict[str, Any]:
    """Inputs of a sub-target: the slice of every variable it branches over.

    Dynamic dependencies resolve to the values of the sibling sub-targets
    (one value for map/cross, a DynamicValue of the group for combine);
    other dependencies are subset by position.
    """
    layout = session.layout.get(subtarget)
    if layout is None or not layout.is_subtarget or layout.subtarget_parent is None:
        raise DynamicBranchError(code="E_NOT_SUBTARGET", message="not a registered sub-target", target=subtarget)
    parent = layout.subtarget_parent
    dynamic = session.layout[parent].dynamic
    index = layout.subtarget_index or 0
    index_deps = subtarget_deps(parent, index, session)

    out: dict[str, Any] = {}
    for dep, positions in index_deps.items():
        if session.is_dynamic(dep):
            siblings = session.layout[dep].subtargets
            values = session.cache.mget_by_hash([siblings[i - 1] for i in positions])
            out[dep] = DynamicValue(payload=values) if isinstance(dynamic, Combine) else values[0]
        else:
            out[dep] = dynamic_subvalue(session.value_of(dep), positions)

    by = which_by(dynamic) if dynamic is not None else None
    if by is not None and by not in out:
        positions = next(iter(index_deps.values()))
        out[by] = dynamic_subvalue(session.value_of(by), positions)

    for dep in layout.deps_static:
        if dep not in out:
            out[dep] = session.value_of(dep)
    return out
