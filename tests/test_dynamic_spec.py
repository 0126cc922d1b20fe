import pytest

from fanout_build.core.dynamic.spec import (
    Combine,
    Cross,
    Map,
    all_vars,
    dump_dynamic,
    kind_of,
    no_by,
    parse_dynamic,
    which_by,
    which_vars,
)


def test_parse_map_and_cross():
    m = parse_dynamic({"map": ["x", "y"], "trace": ["x"]})
    assert m == Map(vars=["x", "y"], trace=["x"])
    c = parse_dynamic({"cross": "w"})
    assert c == Cross(vars=["w"], trace=[])
    assert kind_of(m) == "map"
    assert kind_of(c) == "cross"


def test_parse_combine_by():
    spec = parse_dynamic({"combine": ["y"], "by": "w", "trace": "w"})
    assert isinstance(spec, Combine)
    assert which_vars(spec) == ["y"]
    assert which_by(spec) == "w"
    assert all_vars(spec) == ["y", "w"]
    assert not no_by(spec)


def test_which_by_is_none_outside_combine():
    spec = Map(vars=["x"])
    assert which_by(spec) is None
    assert no_by(spec)
    assert all_vars(spec) == ["x"]


def test_duplicate_variables_collapse():
    assert parse_dynamic({"map": ["x", "x", "y"]}).vars == ["x", "y"]


@pytest.mark.parametrize(
    "raw",
    [
        "map(x)",
        {},
        {"map": ["x"], "cross": ["y"]},
        {"map": []},
        {"map": [1]},
        {"map": ["x"], "by": "w"},
        {"combine": ["x"], "by": ""},
        {"cross": ["x"], "trace": [""]},
    ],
)
def test_parse_rejects_malformed(raw):
    with pytest.raises(ValueError):
        parse_dynamic(raw)


def test_dump_matches_declaration():
    raw = {"combine": ["y"], "by": "w", "trace": ["w"]}
    assert dump_dynamic(parse_dynamic(raw)) == raw
    assert dump_dynamic(parse_dynamic({"map": ["x"]})) == {"map": ["x"]}
