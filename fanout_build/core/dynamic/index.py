from __future__ import annotations

from typing import TYPE_CHECKING

from fanout_build.core.dynamic.hashing import get_dynamic_size, read_dynamic_hashes
from fanout_build.core.dynamic.spec import Combine, Cross, DynamicSpec, Map, which_by, which_vars
from fanout_build.core.errors import DynamicBranchError

if TYPE_CHECKING:
    from fanout_build.core.session.session import BuildSession


def subtarget_deps(target: str, index: int, session: BuildSession) -> dict[str, list[int]]:
    """Map sub-target ``index`` (1-based) of ``target`` to 1-based element
    positions of each fan-out variable."""
    dynamic = session.layout[target].dynamic
    if dynamic is None:
        raise DynamicBranchError(code="E_NOT_DYNAMIC", message="target is not dynamic", target=target)
    if index < 1:
        raise DynamicBranchError(
            code="E_SUBTARGET_INDEX",
            message=f"sub-target index must be >= 1, got {index}",
            target=target,
        )
    return subtarget_deps_impl(dynamic, target, index, session)


def subtarget_deps_impl(
    dynamic: DynamicSpec, target: str, index: int, session: BuildSession
) -> dict[str, list[int]]:
    variables = which_vars(dynamic)
    if isinstance(dynamic, Map):
        return {v: [index] for v in variables}
    if isinstance(dynamic, Cross):
        sizes = [get_dynamic_size(v, session) for v in variables]
        _check_range(target, index, _product(sizes))
        return {v: [i] for v, i in zip(variables, grid_index(index, sizes))}
    if isinstance(dynamic, Combine):
        by = which_by(dynamic)
        if by is None:
            _check_range(target, index, 1)
            positions = list(range(1, get_dynamic_size(variables[0], session) + 1))
        else:
            groups = group_positions(read_dynamic_hashes(by, session))
            _check_range(target, index, len(groups))
            positions = groups[index - 1]
        return {v: list(positions) for v in variables}
    raise TypeError(f"unsupported dynamic spec: {dynamic!r}")


def grid_index(index: int, sizes: list[int]) -> list[int]:
    """Mixed-radix split of a 1-based ordinal; the last radix varies fastest.

    >>> [grid_index(i, [2, 3]) for i in range(1, 7)]
    [[1, 1], [1, 2], [1, 3], [2, 1], [2, 2], [2, 3]]
    """
    rest = index - 1
    out: list[int] = []
    for size in reversed(sizes):
        out.append(rest % size + 1)
        rest //= size
    out.reverse()
    return out


def group_positions(keys: list[str]) -> list[list[int]]:
    """1-based positions of each distinct key, in order of first appearance."""
    groups: dict[str, list[int]] = {}
    for i, key in enumerate(keys, start=1):
        groups.setdefault(key, []).append(i)
    return list(groups.values())


def _product(sizes: list[int]) -> int:
    n = 1
    for s in sizes:
        n *= s
    return n


def _check_range(target: str, index: int, count: int) -> None:
    if index > count:
        raise DynamicBranchError(
            code="E_SUBTARGET_INDEX",
            message=f"sub-target index {index} out of range (target has {count} sub-targets)",
            target=target,
        )
