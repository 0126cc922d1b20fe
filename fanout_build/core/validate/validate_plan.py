from __future__ import annotations

from collections import Counter, deque
from typing import Any, Iterable, Optional, cast

from fanout_build.core.dynamic.spec import DynamicSpec, all_vars, kind_of, parse_dynamic
from fanout_build.core.errors import PlanValidationError
from fanout_build.core.io.load_plan import materialize_value
from fanout_build.core.model import BuildPlan, TargetDecl


def _is_list_of_str(v: Any) -> bool:
    return isinstance(v, list) and all(isinstance(x, str) for x in v)


def validate_plan(plan: dict[str, Any]) -> tuple[Optional[BuildPlan], list[PlanValidationError]]:
    """Validate a plan document.

    Returns (plan, errors). Plan is None when errors exist.
    """

    file = cast(Optional[str], plan.get("__file__"))
    errors: list[PlanValidationError] = []

    schema_version = plan.get("schema_version")
    if not isinstance(schema_version, str) or not schema_version.strip():
        errors.append(
            PlanValidationError(
                code="E_REQUIRED_FIELD",
                message="schema_version is required and must be a non-empty string",
                file=file,
                path="schema_version",
            )
        )

    seed = plan.get("seed", 0)
    if not isinstance(seed, int) or isinstance(seed, bool):
        errors.append(
            PlanValidationError(
                code="E_INVALID_TYPE",
                message="seed must be an integer",
                file=file,
                path="seed",
            )
        )
        seed = 0

    targets = plan.get("targets")
    if not isinstance(targets, list):
        errors.append(
            PlanValidationError(
                code="E_REQUIRED_FIELD",
                message="targets is required and must be an array",
                file=file,
                path="targets",
            )
        )
        return None, _sorted(errors)

    decls: dict[str, TargetDecl] = {}
    index_of: dict[str, int] = {}

    for i, raw in enumerate(targets):
        tpath = f"targets[{i}]"
        if not isinstance(raw, dict):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="target must be an object",
                    file=file,
                    path=tpath,
                )
            )
            continue

        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(
                PlanValidationError(
                    code="E_REQUIRED_FIELD",
                    message="name is required and must be a non-empty string",
                    file=file,
                    path=f"{tpath}.name",
                )
            )
            continue

        if name in decls:
            errors.append(
                PlanValidationError(
                    code="E_DUPLICATE_NAME",
                    message=f"duplicate target name: {name}",
                    file=file,
                    path=f"{tpath}.name",
                )
            )
            continue

        deps = raw.get("depends_on", [])
        if deps is None:
            deps = []
        if not _is_list_of_str(deps):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="depends_on must be an array of strings",
                    file=file,
                    path=f"{tpath}.depends_on",
                )
            )
            continue

        dynamic: Optional[DynamicSpec] = None
        if raw.get("dynamic") is not None:
            try:
                dynamic = parse_dynamic(raw.get("dynamic"))
            except ValueError as e:
                errors.append(
                    PlanValidationError(
                        code="E_INVALID_DYNAMIC",
                        message=str(e),
                        file=file,
                        path=f"{tpath}.dynamic",
                    )
                )
                continue

        has_value = "value" in raw
        if has_value and dynamic is not None:
            errors.append(
                PlanValidationError(
                    code="E_DYNAMIC_WITH_VALUE",
                    message="a dynamic target gets its value from sub-targets; drop value",
                    file=file,
                    path=f"{tpath}.value",
                )
            )
            continue

        value = None
        if has_value:
            try:
                value = materialize_value(raw.get("value"))
            except ValueError as e:
                errors.append(
                    PlanValidationError(
                        code="E_INVALID_VALUE",
                        message=str(e),
                        file=file,
                        path=f"{tpath}.value",
                    )
                )
                continue

        tseed = raw.get("seed")
        if tseed is not None and (not isinstance(tseed, int) or isinstance(tseed, bool)):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="seed must be an integer",
                    file=file,
                    path=f"{tpath}.seed",
                )
            )

        index_of[name] = i
        decls[name] = TargetDecl(
            name=name,
            depends_on=list(dict.fromkeys(cast(list[str], deps))),
            dynamic=dynamic,
            has_value=has_value,
            value=value,
            seed=tseed if isinstance(tseed, int) and not isinstance(tseed, bool) else None,
        )

    # Referential integrity checks.
    for name, decl in decls.items():
        tpath = f"targets[{index_of[name]}]"
        for di, dep in enumerate(decl.depends_on):
            if dep not in decls:
                errors.append(
                    PlanValidationError(
                        code="E_UNKNOWN_DEPENDENCY",
                        message=f"depends_on references unknown target: {dep}",
                        file=file,
                        path=f"{tpath}.depends_on[{di}]",
                    )
                )
        if decl.dynamic is None:
            continue
        variables = all_vars(decl.dynamic)
        for var in variables:
            if var not in decls:
                errors.append(
                    PlanValidationError(
                        code="E_DYNAMIC_UNKNOWN_VAR",
                        message=f"{kind_of(decl.dynamic)}() references unknown target: {var}",
                        file=file,
                        path=f"{tpath}.dynamic",
                    )
                )
            elif var == name:
                errors.append(
                    PlanValidationError(
                        code="E_CYCLE_DETECTED",
                        message=f"target cannot branch over itself: {name}",
                        file=file,
                        path=f"{tpath}.dynamic",
                    )
                )
        for tr in decl.dynamic.trace:
            if tr not in variables:
                errors.append(
                    PlanValidationError(
                        code="E_TRACE_NOT_REACHABLE",
                        message=f"trace {tr} is not one of the dynamic variables {variables}",
                        file=file,
                        path=f"{tpath}.dynamic.trace",
                    )
                )

    if errors:
        return None, _sorted(errors)

    id_to_deps = {name: _deps_of(decl) for name, decl in decls.items()}
    for name, msg in _detect_cycles(id_to_deps):
        errors.append(
            PlanValidationError(
                code="E_CYCLE_DETECTED",
                message=msg,
                file=file,
                path=f"targets[{index_of.get(name, 0)}].depends_on",
            )
        )
    if errors:
        return None, _sorted(errors)

    edges: list[tuple[str, str]] = []
    for name, deps in id_to_deps.items():
        for dep in deps:
            edges.append((dep, name))

    return (
        BuildPlan(
            schema_version=cast(str, schema_version),
            targets_by_name=decls,
            edges=edges,
            order=_topological_order(id_to_deps),
            seed=seed,
        ),
        [],
    )


def summarize_plan(plan: BuildPlan) -> str:
    counts = Counter(
        kind_of(d.dynamic) if d.dynamic is not None else ("value" if d.has_value else "command")
        for d in plan.targets_by_name.values()
    )
    ordered: list[str] = ["value", "command", "map", "cross", "combine"]
    parts = [f"{k}={counts.get(k, 0)}" for k in ordered]
    return f"OK: {len(plan.targets_by_name)} targets (" + ", ".join(parts) + ")\nOrder: " + ", ".join(plan.order)


def _deps_of(decl: TargetDecl) -> list[str]:
    out = list(decl.depends_on)
    if decl.dynamic is not None:
        out.extend(v for v in all_vars(decl.dynamic) if v not in out)
    return out


def _topological_order(id_to_deps: dict[str, list[str]]) -> list[str]:
    # Kahn's algorithm; ties broken by declaration order.
    position = {nid: i for i, nid in enumerate(id_to_deps)}
    pending = {nid: len(deps) for nid, deps in id_to_deps.items()}
    dependents: dict[str, list[str]] = {nid: [] for nid in id_to_deps}
    for nid, deps in id_to_deps.items():
        for dep in deps:
            dependents[dep].append(nid)

    q: deque[str] = deque(nid for nid, n in pending.items() if n == 0)
    out: list[str] = []
    while q:
        cur = q.popleft()
        out.append(cur)
        ready: list[str] = []
        for nxt in dependents[cur]:
            pending[nxt] -= 1
            if pending[nxt] == 0:
                ready.append(nxt)
        q.extend(sorted(ready, key=lambda n: position[n]))
    return out


def _detect_cycles(id_to_deps: dict[str, list[str]]) -> list[tuple[str, str]]:
    WHITE, GRAY, BLACK = 0, 1, 2
    state: dict[str, int] = {nid: WHITE for nid in id_to_deps.keys()}
    stack: list[str] = []
    emitted: set[str] = set()
    out: list[tuple[str, str]] = []

    def dfs(u: str) -> None:
        state[u] = GRAY
        stack.append(u)
        for v in id_to_deps.get(u, []):
            if v not in state:
                continue
            if state[v] == GRAY:
                idx = stack.index(v)
                cycle = stack[idx:] + [v]
                key = "->".join(cycle)
                if key not in emitted:
                    emitted.add(key)
                    out.append((u, "dependency cycle detected: " + " -> ".join(cycle)))
            elif state[v] == WHITE:
                dfs(v)
        stack.pop()
        state[u] = BLACK

    for nid in list(state.keys()):
        if state[nid] == WHITE:
            dfs(nid)

    return out


def _sorted(errors: Iterable[PlanValidationError]) -> list[PlanValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
