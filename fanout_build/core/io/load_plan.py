from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import yaml

from fanout_build.core.errors import PlanLoadError


def load_plan(path: str) -> dict[str, Any]:
    """Load YAML/JSON plan file.

    Returns a dict with keys: schema_version, targets, optional seed.
    Does not coerce types; validator owns shape checking.
    """

    p = Path(path)
    if not p.exists():
        raise PlanLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except Exception as e:  # pragma: no cover
        raise PlanLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise PlanLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except PlanLoadError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise PlanLoadError(code=code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise PlanLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )

    normalized: dict[str, Any] = {
        "schema_version": data.get("schema_version"),
        "targets": data.get("targets"),
    }
    if "seed" in data:
        normalized["seed"] = data.get("seed")

    normalized["__file__"] = str(p)
    return normalized


def materialize_value(raw: Any) -> Any:
    """Turn a plan literal into the value a target holds.

    ``{table: {col: [...]}}`` becomes a DataFrame, ``{array: [...]}`` a numpy
    array; anything else is returned unchanged.
    """
    if isinstance(raw, dict) and len(raw) == 1:
        if "table" in raw:
            table = raw["table"]
            if not isinstance(table, dict):
                raise ValueError("table must be a mapping of column -> values")
            return pd.DataFrame(table)
        if "array" in raw:
            return np.asarray(raw["array"])
    return raw


def dump_value(value: Any) -> Any:
    """Plan-literal form of a value, for writing YAML."""
    if isinstance(value, pd.DataFrame):
        return {"table": {str(c): value[c].tolist() for c in value.columns}}
    if isinstance(value, np.ndarray):
        return {"array": value.tolist()}
    return value
