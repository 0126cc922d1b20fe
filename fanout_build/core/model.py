from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from fanout_build.core.dynamic.spec import DynamicSpec


@dataclass(frozen=True)
class TargetDecl:
    name: str
    depends_on: list[str]
    dynamic: Optional[DynamicSpec] = None

    has_value: bool = False
    value: Any = None
    seed: Optional[int] = None


@dataclass(frozen=True)
class BuildPlan:
    schema_version: str
    targets_by_name: dict[str, TargetDecl]
    edges: list[tuple[str, str]]  # (dependency, dependent)
    order: list[str]  # topological
    seed: int = 0


@dataclass
class Layout:
    """Per-target build metadata. Mutated in place while a session runs."""

    target: str
    dynamic: Optional[DynamicSpec] = None
    deps_static: list[str] = field(default_factory=list)
    deps_dynamic: list[str] = field(default_factory=list)
    deps_dynamic_trace: list[str] = field(default_factory=list)
    deps_build: list[str] = field(default_factory=list)

    is_dynamic: bool = False
    is_subtarget: bool = False
    subtarget_parent: Optional[str] = None
    subtarget_index: Optional[int] = None  # 1-based
    subtargets: list[str] = field(default_factory=list)
    seed: int = 0


@dataclass
class CachedMeta:
    hash: str
    size: int
    dynamic_hashes: Optional[list[str]] = None
    subtargets: Optional[list[str]] = None


@dataclass
class DynamicValue:
    """Value of a dynamic target: one payload element per sub-target.

    ``trace`` maps a trace variable to the grouping values aligned with the
    payload; it is None when the target declares no trace.
    """

    payload: list[Any]
    trace: Optional[dict[str, list[Any]]] = None

    def __len__(self) -> int:
        return len(self.payload)

    def __iter__(self):
        return iter(self.payload)

    def __getitem__(self, i: int) -> Any:
        return self.payload[i]
