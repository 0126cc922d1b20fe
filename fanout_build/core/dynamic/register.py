from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from fanout_build.core.dynamic.index import subtarget_deps
from fanout_build.core.dynamic.naming import subtarget_names
from fanout_build.core.dynamic.spec import all_vars
from fanout_build.core.session.session import seed_from_basic_types

if TYPE_CHECKING:
    from fanout_build.core.session.session import BuildSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registration:
    target: str
    subtargets: list[str]  # every candidate, in sub-target order
    build: list[str]  # the ones that still need to run
    parent_queued: bool


def register_subtargets(
    target: str,
    session: BuildSession,
    *,
    static_ok: bool = True,
    dynamic_ok: bool = True,
) -> Registration:
    """Discover the sub-targets of dynamic ``target`` and wire them into the session.

    ``static_ok``: the parent's own (non-dynamic) inputs are up to date, so
    sub-targets already in the cache can be skipped.
    ``dynamic_ok``: the parent's aggregated value is up to date.

    The parent goes back into the queue (waiting on the pending sub-targets)
    whenever either flag is False or some sub-target still has to run.
    """
    try:
        logger.info("dynamic %s", target)
        subtargets_all = subtarget_names(target, session)
        subtargets_build = subtargets_all
        if static_ok:
            subtargets_build = filter_subtargets(subtargets_all, session)

        if subtargets_all:
            register_in_graph(target, subtargets_all, session)
            register_in_layout(target, subtargets_all, session)

        ndeps = len(subtargets_build)
        if ndeps:
            register_in_queue(subtargets_build, 0, session)
            register_in_counter(len(subtargets_build), session)

        parent_queued = not static_ok or not dynamic_ok or ndeps > 0
        if parent_queued:
            register_in_queue([target], ndeps, session)
            register_in_counter(1, session)
            dynamic_pad_revdep_keys(target, session)

        logger.info(
            "registered %d sub-targets of %s (%d to build)",
            len(subtargets_all),
            target,
            ndeps,
        )
        return Registration(
            target=target,
            subtargets=list(subtargets_all),
            build=list(subtargets_build),
            parent_queued=parent_queued,
        )
    finally:
        session.register_dynamic(target)


def filter_subtargets(subtargets: list[str], session: BuildSession) -> list[str]:
    """Drop sub-targets that are already cached or can be recovered."""
    missing = [s for s in subtargets if not session.cache.exists(s)]
    if not session.config.recover or not missing:
        return missing

    jobs = max(1, session.config.jobs_preprocess)
    if jobs == 1:
        recovered = [recover_subtarget(s, session) for s in missing]
    else:
        with ThreadPoolExecutor(max_workers=jobs) as ex:
            recovered = list(ex.map(lambda s: recover_subtarget(s, session), missing))
    return [s for s, ok in zip(missing, recovered) if not ok]


def recover_subtarget(subtarget: str, session: BuildSession) -> bool:
    try:
        ok = session.cache.recover(subtarget)
    except Exception as e:
        logger.warning("could not recover %s: %s", subtarget, e)
        return False
    if ok:
        logger.info("recovered %s", subtarget)
    return bool(ok)


def register_in_graph(target: str, subtargets: list[str], session: BuildSession) -> None:
    edges = [(s, target) for s in subtargets]
    attrs = {s: {"imported": False} for s in subtargets}
    session.graph.union(edges, attrs)


def register_in_layout(target: str, subtargets: list[str], session: BuildSession) -> None:
    with session.lock:
        for index in range(1, len(subtargets) + 1):
            register_subtarget_layout(index, target, subtargets, session)
        session.layout[target].subtargets = list(subtargets)


def register_subtarget_layout(
    index: int, parent: str, subtargets: list[str], session: BuildSession
) -> None:
    subtarget = subtargets[index - 1]
    parent_layout = session.layout[parent]

    deps_build = list(parent_layout.deps_build)
    if parent_layout.dynamic is not None:
        for dep in all_vars(parent_layout.dynamic):
            if dep not in deps_build:
                deps_build.append(dep)
    deps_build = register_dynamic_subdeps(deps_build, index, parent, session)

    session.layout[subtarget] = replace(
        parent_layout,
        target=subtarget,
        dynamic=None,
        deps_static=list(parent_layout.deps_static),
        deps_dynamic=list(parent_layout.deps_dynamic),
        deps_dynamic_trace=list(parent_layout.deps_dynamic_trace),
        deps_build=deps_build,
        is_dynamic=False,
        is_subtarget=True,
        subtarget_parent=parent,
        subtarget_index=index,
        subtargets=[],
        seed=seed_from_basic_types(session.seed, parent_layout.seed, subtarget),
    )


def register_dynamic_subdeps(
    deps_build: list[str], index: int, parent: str, session: BuildSession
) -> list[str]:
    """Swap dynamic dependencies for the sibling sub-targets this one reads."""
    index_deps = subtarget_deps(parent, index, session)
    out = list(deps_build)
    for dep, positions in index_deps.items():
        if not session.is_dynamic(dep):
            continue
        siblings = session.layout[dep].subtargets
        subdeps = [siblings[i - 1] for i in positions if i <= len(siblings)]
        out = [d for d in out if d != dep]
        out.extend(s for s in subdeps if s not in out)
    return out


def register_in_queue(targets: list[str], ndeps: int, session: BuildSession) -> None:
    if session.queue is None:
        return
    session.queue.push(targets, ndeps)


def register_in_counter(n: int, session: BuildSession) -> None:
    if session.counter is None:
        return
    session.counter.increase(n)


def dynamic_pad_revdep_keys(target: str, session: BuildSession) -> None:
    """Downstream targets already queued must now also wait on ``target``."""
    if session.queue is None:
        return
    queued = set(session.queue.list())
    revdeps = [t for t in session.graph.downstream(target) if t in queued]
    session.queue.increase_key(revdeps)
