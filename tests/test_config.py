from pathlib import Path

import pytest

from fanout_build.core.session.config import (
    DEFAULT_CONFIG,
    SessionConfigError,
    load_and_merge,
    load_config_file,
    merged_config,
)

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


def test_defaults():
    assert DEFAULT_CONFIG.max_expand is None
    assert DEFAULT_CONFIG.recover is False
    assert DEFAULT_CONFIG.jobs_preprocess == 1
    assert DEFAULT_CONFIG.log_level == "WARNING"


def test_load_example_config():
    cfg = load_config_file(EXAMPLES / "session-config.yaml")
    assert cfg == {"max_expand": 1, "recover": True, "jobs_preprocess": 2, "log_level": "INFO"}


def test_cli_overrides_file(tmp_path):
    p = tmp_path / "cfg.yaml"
    p.write_text("max_expand: 5\nseed: 3\n", encoding="utf-8")
    cfg = load_and_merge(str(p), max_expand=2, recover=None)
    assert cfg.max_expand == 2
    assert cfg.seed == 3
    assert cfg.recover is False


def test_empty_file_is_no_overrides(tmp_path):
    p = tmp_path / "cfg.yaml"
    p.write_text("", encoding="utf-8")
    assert load_config_file(p) == {}


def test_log_level_is_normalized():
    assert merged_config({"log_level": "debug"}).log_level == "DEBUG"


@pytest.mark.parametrize(
    "text",
    [
        "- 1\n- 2\n",
        "colour: blue\n",
        "max_expand: 0\n",
        "max_expand: true\n",
        "recover: yes please\n",
        "jobs_preprocess: -1\n",
        "seed: 1.5\n",
        "log_level: LOUD\n",
    ],
)
def test_invalid_config_file(tmp_path, text):
    p = tmp_path / "cfg.yaml"
    p.write_text(text, encoding="utf-8")
    with pytest.raises(SessionConfigError):
        load_config_file(p)


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config_file(tmp_path / "nope.yaml")
