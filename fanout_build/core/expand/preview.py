from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

import yaml

from fanout_build.core.cache.memory_cache import Cache, MemoryCache
from fanout_build.core.dynamic.build import store_target
from fanout_build.core.dynamic.register import register_subtargets
from fanout_build.core.dynamic.spec import all_vars, dump_dynamic, kind_of
from fanout_build.core.errors import BuildError
from fanout_build.core.io.load_plan import dump_value
from fanout_build.core.model import BuildPlan
from fanout_build.core.session.config import DEFAULT_CONFIG, SessionConfig
from fanout_build.core.session.session import BuildSession, create_session

logger = logging.getLogger(__name__)

PreviewStatus = Literal["value", "command", "expanded", "pending", "error"]


@dataclass(frozen=True)
class TargetPreview:
    target: str
    kind: str
    status: PreviewStatus
    subtargets: list[str] = field(default_factory=list)
    build: list[str] = field(default_factory=list)
    reason: Optional[str] = None


@dataclass(frozen=True)
class PreviewResult:
    session: BuildSession
    targets: list[TargetPreview]

    @property
    def ok(self) -> bool:
        return not any(t.status == "error" for t in self.targets)


def preview_expansion(
    plan: BuildPlan,
    config: SessionConfig = DEFAULT_CONFIG,
    cache: Optional[Cache] = None,
) -> PreviewResult:
    """Expand every dynamic target whose inputs are known without running bodies.

    Literal targets are stored first. A dynamic target is expanded once all
    the variables it branches over have cached values; the others stay
    pending (typically because they branch over another dynamic target).
    An expansion error is recorded on its target and does not stop the rest.
    """
    session = create_session(plan, cache if cache is not None else MemoryCache(), config)
    out: list[TargetPreview] = []

    for name in plan.order:
        decl = plan.targets_by_name[name]
        if decl.dynamic is None:
            if decl.has_value:
                store_target(name, decl.value, session)
                out.append(TargetPreview(target=name, kind="value", status="value"))
            else:
                out.append(TargetPreview(target=name, kind="command", status="command"))
            continue

        kind = kind_of(decl.dynamic)
        missing = [v for v in all_vars(decl.dynamic) if not session.cache.exists(v)]
        if missing:
            out.append(
                TargetPreview(
                    target=name,
                    kind=kind,
                    status="pending",
                    reason="waiting on: " + ", ".join(missing),
                )
            )
            continue

        try:
            reg = register_subtargets(name, session)
        except BuildError as e:
            logger.warning("expansion of %s failed: %s", name, e)
            out.append(TargetPreview(target=name, kind=kind, status="error", reason=str(e)))
            continue
        out.append(
            TargetPreview(
                target=name,
                kind=kind,
                status="expanded",
                subtargets=reg.subtargets,
                build=reg.build,
            )
        )

    return PreviewResult(session=session, targets=out)


def expansion_to_dict(plan: BuildPlan, result: PreviewResult) -> dict[str, Any]:
    """Plan document extended with one entry per discovered sub-target."""
    layout = result.session.layout
    targets: list[dict[str, Any]] = []
    for name in plan.order:
        decl = plan.targets_by_name[name]
        entry: dict[str, Any] = {"name": name}
        if decl.depends_on:
            entry["depends_on"] = list(decl.depends_on)
        if decl.dynamic is not None:
            entry["dynamic"] = dump_dynamic(decl.dynamic)
            if layout[name].subtargets:
                entry["subtargets"] = list(layout[name].subtargets)
        elif decl.has_value:
            entry["value"] = dump_value(decl.value)
        targets.append(entry)

    for name in plan.order:
        for sub in layout[name].subtargets:
            lay = layout[sub]
            targets.append(
                {
                    "name": sub,
                    "subtarget_parent": lay.subtarget_parent,
                    "subtarget_index": lay.subtarget_index,
                    "depends_on": list(lay.deps_build),
                    "seed": lay.seed,
                }
            )

    return {"schema_version": plan.schema_version, "seed": plan.seed, "targets": targets}


def dump_expansion_yaml(doc: dict[str, Any], path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, sort_keys=False, default_flow_style=False, allow_unicode=True)
