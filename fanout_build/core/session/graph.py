from __future__ import annotations

import threading
from collections import defaultdict, deque
from typing import Any, Iterable, Optional

from fanout_build.core.errors import GraphCycleError


class DependencyGraph:
    """Directed dependency graph, edges point from dependency to dependent.

    The graph only grows: union() adds vertices and edges, re-adding existing
    ones is a no-op, and a union that would close a cycle is rejected without
    touching the graph.
    """

    def __init__(self) -> None:
        self._vertices: dict[str, dict[str, Any]] = {}
        self._succ: dict[str, set[str]] = defaultdict(set)
        self._pred: dict[str, set[str]] = defaultdict(set)
        self._lock = threading.Lock()

    def union(
        self,
        edges: Iterable[tuple[str, str]],
        vertex_attrs: Optional[dict[str, dict[str, Any]]] = None,
    ) -> None:
        edges = list(edges)
        attrs = vertex_attrs or {}
        with self._lock:
            new_edges = [(u, v) for u, v in edges if v not in self._succ.get(u, ())]
            cycle = self._cycle_with(new_edges)
            if cycle:
                raise GraphCycleError(
                    code="E_GRAPH_CYCLE",
                    message="dependency cycle detected: " + " -> ".join(cycle),
                    target=cycle[0],
                )
            for u, v in edges:
                self._vertices.setdefault(u, {})
                self._vertices.setdefault(v, {})
            for name, extra in attrs.items():
                self._vertices.setdefault(name, {}).update(extra)
            for u, v in new_edges:
                self._succ[u].add(v)
                self._pred[v].add(u)

    def add_vertex(self, name: str, **attrs: Any) -> None:
        self.union([], {name: attrs})

    def has_vertex(self, name: str) -> bool:
        return name in self._vertices

    def vertex_attr(self, name: str, key: str, default: Any = None) -> Any:
        return self._vertices.get(name, {}).get(key, default)

    def vertices(self) -> list[str]:
        with self._lock:
            return list(self._vertices.keys())

    def edges(self) -> list[tuple[str, str]]:
        with self._lock:
            return sorted((u, v) for u, vs in self._succ.items() for v in vs)

    def downstream(self, name: str) -> list[str]:
        """Direct dependents of ``name``."""
        return sorted(self._succ.get(name, ()))

    def upstream(self, name: str) -> list[str]:
        return sorted(self._pred.get(name, ()))

    def _cycle_with(self, new_edges: list[tuple[str, str]]) -> list[str]:
        # A new edge u -> v closes a cycle iff v already reaches u.
        extra: dict[str, set[str]] = defaultdict(set)
        for u, v in new_edges:
            extra[u].add(v)
        for u, v in new_edges:
            path = self._path(v, u, extra)
            if path:
                return [u] + path
        return []

    def _path(self, start: str, goal: str, extra: dict[str, set[str]]) -> list[str]:
        q: deque[str] = deque([start])
        parent: dict[str, Optional[str]] = {start: None}
        while q:
            cur = q.popleft()
            if cur == goal:
                out: list[str] = []
                node: Optional[str] = cur
                while node is not None:
                    out.append(node)
                    node = parent[node]
                return list(reversed(out))
            for nxt in self._succ.get(cur, set()) | extra.get(cur, set()):
                if nxt not in parent:
                    parent[nxt] = cur
                    q.append(nxt)
        return []
