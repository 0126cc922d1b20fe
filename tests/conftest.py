from __future__ import annotations

from typing import Any, Callable

import pytest

from fanout_build.core.cache.memory_cache import MemoryCache
from fanout_build.core.dynamic.build import dynamic_build, load_subtarget_deps, store_target
from fanout_build.core.dynamic.register import register_subtargets
from fanout_build.core.session.config import merged_config
from fanout_build.core.session.session import BuildSession, create_session
from fanout_build.core.validate.validate_plan import validate_plan


def build_session(targets: list[dict[str, Any]], cache: Any = None, **config: Any) -> BuildSession:
    plan, errors = validate_plan({"schema_version": "0.1.0", "targets": targets})
    assert errors == [], [str(e) for e in errors]
    assert plan is not None
    session = create_session(plan, cache if cache is not None else MemoryCache(), merged_config(config))
    for name in plan.order:
        decl = plan.targets_by_name[name]
        if decl.has_value:
            store_target(name, decl.value, session)
    return session


def run_dynamic(session: BuildSession, target: str, body: Callable[[dict[str, Any]], Any]):
    """Stand-in for the make loop: expand, build every sub-target, aggregate."""
    register_subtargets(target, session)
    for sub in session.layout[target].subtargets:
        if not session.cache.exists(sub):
            store_target(sub, body(load_subtarget_deps(sub, session)), session)
    built = dynamic_build(target, session)
    store_target(target, built.value, session, built.meta)
    return built.value


@pytest.fixture
def make_session():
    return build_session


@pytest.fixture
def run_target():
    return run_dynamic
