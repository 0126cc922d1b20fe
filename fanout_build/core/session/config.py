from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass(frozen=True)
class SessionConfig:
    max_expand: Optional[int] = None
    recover: bool = False
    jobs_preprocess: int = 1
    seed: int = 0
    log_level: str = "WARNING"


DEFAULT_CONFIG = SessionConfig()

LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SessionConfigError(ValueError):
    pass


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load session overrides from a YAML file.

    Format (every key optional):
      max_expand: 10
      recover: true
      jobs_preprocess: 4
      seed: 123
      log_level: INFO

    Returns the validated overrides; unknown keys are an error.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SessionConfigError("config file must be a mapping of option -> value")

    known = {f.name for f in fields(SessionConfig)}
    out: dict[str, Any] = {}
    for k, v in raw.items():
        if k not in known:
            raise SessionConfigError(f"unknown config option: {k} (known: {', '.join(sorted(known))})")
        out[k] = _check_option(k, v)
    return out


def merged_config(overrides: dict[str, Any] | None = None) -> SessionConfig:
    """Return DEFAULT_CONFIG with overrides applied. None values are skipped."""
    cfg = DEFAULT_CONFIG
    if overrides:
        clean = {k: _check_option(k, v) for k, v in overrides.items() if v is not None}
        cfg = replace(cfg, **clean)
    return cfg


def load_and_merge(config_file: str | None, **overrides: Any) -> SessionConfig:
    """File options first, then explicit (CLI) overrides on top."""
    merged: dict[str, Any] = {}
    if config_file:
        merged.update(load_config_file(config_file))
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return merged_config(merged)


def _check_option(key: str, value: Any) -> Any:
    if key == "max_expand":
        if value is None:
            return None
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise SessionConfigError("max_expand must be a positive integer")
        return value
    if key == "recover":
        if not isinstance(value, bool):
            raise SessionConfigError("recover must be a boolean")
        return value
    if key == "jobs_preprocess":
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise SessionConfigError("jobs_preprocess must be a positive integer")
        return value
    if key == "seed":
        if not isinstance(value, int) or isinstance(value, bool):
            raise SessionConfigError("seed must be an integer")
        return value
    if key == "log_level":
        if not isinstance(value, str) or value.upper() not in LOG_LEVELS:
            raise SessionConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return value.upper()
    raise SessionConfigError(f"unknown config option: {key}")
