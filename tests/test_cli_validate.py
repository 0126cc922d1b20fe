import json
from pathlib import Path

from typer.testing import CliRunner

from fanout_build.cli import app

runner = CliRunner()

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


def test_cli_validate_success():
    r = runner.invoke(app, ["validate", str(EXAMPLES / "basic-plan.yaml")])
    assert r.exit_code == 0
    assert "OK: 9 targets" in r.stdout
    assert "Order:" in r.stdout


def test_cli_validate_failure():
    r = runner.invoke(app, ["validate", str(EXAMPLES / "invalid-unknown-dep.yaml")])
    assert r.exit_code == 2
    assert "E_UNKNOWN_DEPENDENCY" in r.output


def test_cli_validate_missing_file():
    r = runner.invoke(app, ["validate", str(EXAMPLES / "nope.yaml")])
    assert r.exit_code == 1
    assert "E_FILE_NOT_FOUND" in r.output


def test_cli_validate_json_success():
    r = runner.invoke(app, ["validate", str(EXAMPLES / "basic-plan.yaml"), "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["tool"] == "fanout"
    assert payload["command"] == "validate"
    assert payload["ok"] is True
    assert payload["error_count"] == 0
    assert payload["summary"]["target_count"] == 9
    assert payload["summary"]["dynamic"] == ["groups", "pairs", "rows", "summary", "y"]


def test_cli_validate_json_failure():
    r = runner.invoke(app, ["validate", str(EXAMPLES / "invalid-trace.yaml"), "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    assert payload["summary"] is None
    item = payload["errors"][0]
    assert item["code"] == "E_TRACE_NOT_REACHABLE"
    assert item["source"] == "validate"
    assert item["path"] == "targets[2].dynamic.trace"


def test_cli_validate_json_load_error():
    r = runner.invoke(app, ["validate", str(EXAMPLES / "nope.yaml"), "--format", "json"])
    assert r.exit_code == 1
    payload = json.loads(r.stdout)
    assert payload["errors"][0]["source"] == "load"


def test_cli_validate_unknown_format():
    r = runner.invoke(app, ["validate", str(EXAMPLES / "basic-plan.yaml"), "--format", "xml"])
    assert r.exit_code == 2
    assert "E_VALIDATE_UNKNOWN_FORMAT" in r.output
