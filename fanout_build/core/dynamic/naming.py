from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Optional

from fanout_build.core.dynamic.hashing import read_dynamic_hashes
from fanout_build.core.dynamic.shapes import short_hash
from fanout_build.core.dynamic.spec import Combine, Cross, DynamicSpec, Map, which_by, which_vars
from fanout_build.core.errors import DynamicBranchError

if TYPE_CHECKING:
    from fanout_build.core.session.session import BuildSession


def subtarget_names(target: str, session: BuildSession) -> list[str]:
    """Deterministic names of the sub-targets of dynamic ``target``.

    Each name is ``<target>_<digest>`` where the digest covers the element
    hashes the sub-target consumes, so unchanged inputs give unchanged names.
    """
    dynamic = session.layout[target].dynamic
    if dynamic is None:
        raise DynamicBranchError(code="E_NOT_DYNAMIC", message="target is not dynamic", target=target)
    hashes, by_hashes = dynamic_hash_list(dynamic, target, session)
    keys = subtarget_hashes(dynamic, hashes, by_hashes)
    out = make_unique([f"{target}_{short_hash(k)}" for k in keys])
    return max_expand_dynamic(out, session.max_expand)


def dynamic_hash_list(
    dynamic: DynamicSpec, target: str, session: BuildSession
) -> tuple[dict[str, list[str]], Optional[list[str]]]:
    """Element hashes per variable, plus the hashes of the grouping variable."""
    if isinstance(dynamic, Map):
        deps = sorted(which_vars(dynamic))
        hashes = {dep: read_dynamic_hashes(dep, session) for dep in deps}
        assert_equal_branches(target, list(hashes.keys()), [len(h) for h in hashes.values()])
        return hashes, None
    if isinstance(dynamic, Cross):
        # Declared order, not sorted names: the first variable varies slowest
        # so that ordinal i from grid_index() is the i-th name.
        return {dep: read_dynamic_hashes(dep, session) for dep in which_vars(dynamic)}, None
    if isinstance(dynamic, Combine):
        deps = sorted(which_vars(dynamic))
        hashes = {dep: read_dynamic_hashes(dep, session) for dep in deps}
        names = list(hashes.keys())
        lengths = [len(h) for h in hashes.values()]
        by = which_by(dynamic)
        by_hashes: Optional[list[str]] = None
        if by is not None:
            by_hashes = read_dynamic_hashes(by, session)
            names.append(by)
            lengths.append(len(by_hashes))
        assert_equal_branches(target, names, lengths)
        return hashes, by_hashes
    raise TypeError(f"unsupported dynamic spec: {dynamic!r}")


def subtarget_hashes(
    dynamic: DynamicSpec,
    hashes: dict[str, list[str]],
    by_hashes: Optional[list[str]] = None,
) -> list[str]:
    """One composite key per sub-target."""
    lists = list(hashes.values())
    if isinstance(dynamic, Map):
        return [" ".join(row) for row in zip(*lists)]
    if isinstance(dynamic, Cross):
        return [" ".join(row) for row in itertools.product(*lists)]
    if isinstance(dynamic, Combine):
        rows = [" ".join(row) for row in zip(*lists)]
        if by_hashes is None:
            return [" ".join(rows)] if rows else []
        groups: dict[str, list[str]] = {}
        for group, row in zip(by_hashes, rows):
            groups.setdefault(group, []).append(row)
        return [" ".join(members) for members in groups.values()]
    raise TypeError(f"unsupported dynamic spec: {dynamic!r}")


def assert_equal_branches(target: str, deps: list[str], lengths: list[int]) -> None:
    if len(set(lengths)) <= 1:
        return
    seen: set[int] = set()
    names: list[str] = []
    sizes: list[str] = []
    for dep, n in zip(deps, lengths):
        if n in seen:
            continue
        seen.add(n)
        names.append(dep)
        sizes.append(str(n))
    raise DynamicBranchError(
        code="E_UNEQUAL_BRANCHES",
        message=(
            "for dynamic map() and combine(), all grouping variables must have equal lengths. "
            f"The lengths of {', '.join(names)} were {', '.join(sizes)}, respectively."
        ),
        target=target,
    )


def make_unique(names: list[str]) -> list[str]:
    """Suffix repeated names with .1, .2, ... keeping first occurrences as is."""
    taken = set(names)
    counts: dict[str, int] = {}
    seen: set[str] = set()
    out: list[str] = []
    for name in names:
        if name not in seen:
            seen.add(name)
            out.append(name)
            continue
        n = counts.get(name, 0)
        while True:
            n += 1
            candidate = f"{name}.{n}"
            if candidate not in taken:
                break
        counts[name] = n
        taken.add(candidate)
        out.append(candidate)
    return out


def max_expand_dynamic(targets: list[str], max_expand: Optional[int]) -> list[str]:
    if max_expand is None:
        return targets
    return targets[: max(0, max_expand)]
