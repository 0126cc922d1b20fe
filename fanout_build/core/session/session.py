from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from fanout_build.core.cache.memory_cache import Cache
from fanout_build.core.dynamic.spec import all_vars
from fanout_build.core.model import BuildPlan, Layout
from fanout_build.core.session.config import DEFAULT_CONFIG, SessionConfig
from fanout_build.core.session.graph import DependencyGraph
from fanout_build.core.session.hashtable import HashTable
from fanout_build.core.session.queue import ExecutionQueue, RemainingCounter


@dataclass
class BuildSession:
    """Shared state of one build session.

    Graph, layout, queue, counter and the memo tables are append-only while
    the session runs. Callers that mutate the layout hold ``lock``; the other
    registries carry their own locks. ``queue`` and ``counter`` may be None
    when nothing schedules work (previews).
    """

    cache: Cache
    config: SessionConfig = DEFAULT_CONFIG
    layout: dict[str, Layout] = field(default_factory=dict)
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    queue: Optional[ExecutionQueue] = field(default_factory=ExecutionQueue)
    counter: Optional[RemainingCounter] = field(default_factory=RemainingCounter)

    # In-memory values of targets loaded or built during this session.
    targets: dict[str, Any] = field(default_factory=dict)

    ht_dynamic: HashTable = field(default_factory=HashTable)
    ht_dynamic_deps: HashTable = field(default_factory=HashTable)
    ht_dynamic_size: HashTable = field(default_factory=HashTable)

    lock: threading.RLock = field(default_factory=threading.RLock)

    @property
    def max_expand(self) -> Optional[int]:
        return self.config.max_expand

    @property
    def seed(self) -> int:
        return self.config.seed

    def reset_memo(self) -> None:
        """Clear the memo tables, e.g. after cached values changed under the session.

        The dynamic-dependency table is rebuilt from the layout, not left empty.
        """
        self.ht_dynamic.reset()
        self.ht_dynamic_size.reset()
        self.ht_dynamic_deps.reset()
        with self.lock:
            for lay in self.layout.values():
                for dep in lay.deps_dynamic:
                    self.ht_dynamic_deps.set(dep)

    def is_dynamic(self, target: str) -> bool:
        lay = self.layout.get(target)
        return bool(lay and lay.is_dynamic)

    def is_subtarget(self, target: str) -> bool:
        lay = self.layout.get(target)
        return bool(lay and lay.is_subtarget)

    def is_dynamic_dep(self, target: str) -> bool:
        return self.ht_dynamic_deps.exists(target)

    def register_dynamic(self, target: str) -> None:
        self.ht_dynamic.set(target)

    def is_registered_dynamic(self, target: str) -> bool:
        return self.ht_dynamic.exists(target)

    def value_of(self, target: str) -> Any:
        """In-memory value of ``target``, loading it from the cache if needed."""
        if target in self.targets:
            return self.targets[target]
        value = self.cache.get(target)
        with self.lock:
            self.targets.setdefault(target, value)
        return self.targets[target]


def create_session(
    plan: BuildPlan,
    cache: Cache,
    config: SessionConfig = DEFAULT_CONFIG,
    *,
    with_queue: bool = True,
) -> BuildSession:
    session = BuildSession(
        cache=cache,
        config=config,
        queue=ExecutionQueue() if with_queue else None,
        counter=RemainingCounter() if with_queue else None,
    )
    session.layout = create_layout(plan, config.seed)
    session.reset_memo()

    session.graph.union(
        plan.edges,
        {name: {"imported": False} for name in plan.order},
    )
    return session


def create_layout(plan: BuildPlan, seed: int = 0) -> dict[str, Layout]:
    out: dict[str, Layout] = {}
    for name in plan.order:
        decl = plan.targets_by_name[name]
        deps_dynamic = all_vars(decl.dynamic) if decl.dynamic is not None else []
        deps_build = list(decl.depends_on)
        for dep in deps_dynamic:
            if dep not in deps_build:
                deps_build.append(dep)
        out[name] = Layout(
            target=name,
            dynamic=decl.dynamic,
            deps_static=list(decl.depends_on),
            deps_dynamic=deps_dynamic,
            deps_dynamic_trace=list(decl.dynamic.trace) if decl.dynamic is not None else [],
            deps_build=deps_build,
            is_dynamic=decl.dynamic is not None,
            seed=decl.seed if decl.seed is not None else seed_from_basic_types(seed, name),
        )
    return out


def seed_from_basic_types(*parts: Any) -> int:
    """Deterministic 31-bit seed from strings and integers."""
    text = "\x1f".join(repr(p) for p in parts)
    digest = hashlib.blake2b(text.encode("utf-8"), digest_size=4).digest()
    return int.from_bytes(digest, "big") & 0x7FFFFFFF
