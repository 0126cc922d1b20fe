from pathlib import Path

import pytest

from fanout_build.core.dynamic.spec import Combine, Cross, Map
from fanout_build.core.io.load_plan import load_plan
from fanout_build.core.validate.validate_plan import summarize_plan, validate_plan

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


def _plan(targets, **extra):
    return {"schema_version": "0.1.0", "targets": targets, **extra}


def _codes(raw):
    plan, errors = validate_plan(raw)
    assert plan is None
    return [e.code for e in errors]


def test_validate_happy_path():
    plan, errors = validate_plan(load_plan(str(EXAMPLES / "basic-plan.yaml")))
    assert errors == []
    assert plan is not None
    assert plan.seed == 7
    assert isinstance(plan.targets_by_name["y"].dynamic, Map)
    assert isinstance(plan.targets_by_name["pairs"].dynamic, Cross)
    assert isinstance(plan.targets_by_name["summary"].dynamic, Combine)
    assert ("x", "y") in plan.edges
    assert ("grid", "rows") in plan.edges
    assert plan.order.index("y") < plan.order.index("summary")
    assert plan.order.index("w") < plan.order.index("summary")


def test_order_breaks_ties_by_declaration():
    plan, _ = validate_plan(
        _plan(
            [
                {"name": "b", "depends_on": ["a"]},
                {"name": "c"},
                {"name": "a"},
            ]
        )
    )
    assert plan.order == ["c", "a", "b"]


def test_summary_counts_kinds():
    plan, _ = validate_plan(load_plan(str(EXAMPLES / "basic-plan.yaml")))
    text = summarize_plan(plan)
    assert text.startswith("OK: 9 targets (value=4, command=0, map=2, cross=1, combine=2)")
    assert "\nOrder: w, x, table, grid, " in text


def test_validate_unknown_dependency():
    plan, errors = validate_plan(load_plan(str(EXAMPLES / "invalid-unknown-dep.yaml")))
    assert plan is None
    assert any(e.code == "E_UNKNOWN_DEPENDENCY" for e in errors)
    assert errors[0].file.endswith("invalid-unknown-dep.yaml")


def test_validate_trace_not_reachable():
    assert "E_TRACE_NOT_REACHABLE" in _codes(load_plan(str(EXAMPLES / "invalid-trace.yaml")))


def test_validate_cycle_through_dynamic():
    assert "E_CYCLE_DETECTED" in _codes(load_plan(str(EXAMPLES / "invalid-cycle.yaml")))


def test_branching_over_self():
    assert "E_CYCLE_DETECTED" in _codes(_plan([{"name": "a", "dynamic": {"map": ["a"]}}]))


@pytest.mark.parametrize(
    "raw,code",
    [
        ({"targets": []}, "E_REQUIRED_FIELD"),
        (_plan(None), "E_REQUIRED_FIELD"),
        (_plan([], seed="x"), "E_INVALID_TYPE"),
        (_plan(["a"]), "E_INVALID_TYPE"),
        (_plan([{"value": 1}]), "E_REQUIRED_FIELD"),
        (_plan([{"name": "a"}, {"name": "a"}]), "E_DUPLICATE_NAME"),
        (_plan([{"name": "a", "depends_on": "b"}]), "E_INVALID_TYPE"),
        (_plan([{"name": "a", "dynamic": {"map": []}}]), "E_INVALID_DYNAMIC"),
        (
            _plan([{"name": "x", "value": [1]}, {"name": "a", "value": [1], "dynamic": {"map": ["x"]}}]),
            "E_DYNAMIC_WITH_VALUE",
        ),
        (_plan([{"name": "a", "value": {"table": [1, 2]}}]), "E_INVALID_VALUE"),
        (_plan([{"name": "a", "dynamic": {"map": ["ghost"]}}]), "E_DYNAMIC_UNKNOWN_VAR"),
        (_plan([{"name": "a", "seed": "s"}]), "E_INVALID_TYPE"),
    ],
)
def test_validate_rejects(raw, code):
    assert code in _codes(raw)


def test_errors_are_sorted_by_path():
    _, errors = validate_plan(
        _plan(
            [
                {"name": "a", "depends_on": ["ghost"]},
                {"name": "b", "dynamic": {"map": ["ghost"]}},
            ]
        )
    )
    assert [e.path for e in errors] == ["targets[0].depends_on[0]", "targets[1].dynamic"]
