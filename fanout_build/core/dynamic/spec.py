from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class Map:
    vars: list[str]
    trace: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Cross:
    vars: list[str]
    trace: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Combine:
    vars: list[str]
    by: Optional[str] = None
    trace: list[str] = field(default_factory=list)


DynamicSpec = Union[Map, Cross, Combine]

DYNAMIC_KINDS: tuple[str, ...] = ("map", "cross", "combine")


def which_vars(dynamic: DynamicSpec) -> list[str]:
    """Fan-out variables, excluding the grouping variable of combine()."""
    return list(dynamic.vars)


def which_by(dynamic: DynamicSpec) -> Optional[str]:
    if isinstance(dynamic, Combine):
        return dynamic.by
    return None


def no_by(dynamic: DynamicSpec) -> bool:
    return which_by(dynamic) is None


def all_vars(dynamic: DynamicSpec) -> list[str]:
    out = which_vars(dynamic)
    by = which_by(dynamic)
    if by is not None and by not in out:
        out.append(by)
    return out


def kind_of(dynamic: DynamicSpec) -> str:
    if isinstance(dynamic, Map):
        return "map"
    if isinstance(dynamic, Cross):
        return "cross"
    if isinstance(dynamic, Combine):
        return "combine"
    raise TypeError(f"not a dynamic spec: {dynamic!r}")


def parse_dynamic(raw: Any) -> DynamicSpec:
    """Parse a plan declaration into a DynamicSpec.

    Accepted forms (exactly one of map/cross/combine):

      {map: [x, y], trace: [x]}
      {cross: [w, x], trace: [w]}
      {combine: [y], by: w, trace: [w]}

    A bare string is accepted for a single variable (``{map: x}``), and
    ``trace`` may be a string as well.
    """

    if not isinstance(raw, dict):
        raise ValueError("dynamic must be a mapping with one of: map, cross, combine")

    kinds = [k for k in DYNAMIC_KINDS if k in raw]
    if len(kinds) != 1:
        raise ValueError(f"dynamic must declare exactly one of {list(DYNAMIC_KINDS)}")
    kind = kinds[0]

    allowed = {kind, "trace"} | ({"by"} if kind == "combine" else set())
    unknown = sorted(str(k) for k in raw.keys() if k not in allowed)
    if unknown:
        raise ValueError(f"unknown keys for {kind}(): {', '.join(unknown)}")

    variables = _names(raw.get(kind), f"{kind} variables")
    if not variables:
        raise ValueError(f"{kind}() needs at least one variable")
    trace = _names(raw.get("trace", []), "trace")

    if kind == "map":
        return Map(vars=variables, trace=trace)
    if kind == "cross":
        return Cross(vars=variables, trace=trace)

    by = raw.get("by")
    if by is not None and (not isinstance(by, str) or not by.strip()):
        raise ValueError("by must be a non-empty string")
    return Combine(vars=variables, by=by.strip() if by else None, trace=trace)


def dump_dynamic(dynamic: DynamicSpec) -> dict[str, Any]:
    out: dict[str, Any] = {kind_of(dynamic): list(dynamic.vars)}
    by = which_by(dynamic)
    if by is not None:
        out["by"] = by
    if dynamic.trace:
        out["trace"] = list(dynamic.trace)
    return out


def _names(value: Any, what: str) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"{what} must be a string or a list of strings")
    out: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f"{what} must contain non-empty strings")
        name = item.strip()
        if name not in out:
            out.append(name)
    return out
