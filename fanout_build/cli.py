from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer

from fanout_build.core.errors import BuildError, PlanLoadError, PlanValidationError
from fanout_build.core.expand.preview import dump_expansion_yaml, expansion_to_dict, preview_expansion
from fanout_build.core.io.load_plan import load_plan
from fanout_build.core.session.config import SessionConfigError, load_config_file, merged_config
from fanout_build.core.validate.validate_plan import summarize_plan, validate_plan

app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _callback() -> None:
    """fanout: dynamic branching for build plans."""
    return


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate a plan file."""
    if format not in ("text", "json"):
        _print_errors(
            [
                PlanValidationError(
                    code="E_VALIDATE_UNKNOWN_FORMAT",
                    message=f"unknown format: {format} (choose one of: text, json)",
                    path="format",
                )
            ]
        )
        raise typer.Exit(code=2)

    def _emit_json(ok: bool, *, exit_code: int, errors: list[BuildError], summary: dict | None) -> None:
        payload = {
            "tool": "fanout",
            "command": "validate",
            "ok": ok,
            "error_count": len(errors),
            "errors": [_to_item(e) for e in errors],
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        raw = load_plan(path)
    except PlanLoadError as e:
        if format == "json":
            _emit_json(False, exit_code=1, errors=[e], summary=None)
        _print_errors([e])
        raise typer.Exit(code=1)

    plan, errors = validate_plan(raw)
    if errors or plan is None:
        if format == "json":
            _emit_json(False, exit_code=2, errors=list(errors), summary=None)
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    if format == "text":
        typer.echo(summarize_plan(plan))
        return

    _emit_json(
        True,
        exit_code=0,
        errors=[],
        summary={
            "schema_version": plan.schema_version,
            "target_count": len(plan.targets_by_name),
            "dynamic": sorted(n for n, d in plan.targets_by_name.items() if d.dynamic is not None),
            "order": list(plan.order),
        },
    )


@app.command("expand")
def expand(
    path: str = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)"),
    max_expand: Optional[int] = typer.Option(
        None,
        "--max-expand",
        min=1,
        help="Register at most this many sub-targets per dynamic target",
    ),
    config_file: Optional[str] = typer.Option(None, "--config", help="Optional YAML session config"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the expanded plan as YAML"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
) -> None:
    """Preview dynamic branching: name and register sub-targets without building them."""
    if format not in ("text", "json"):
        _print_errors(
            [
                PlanValidationError(
                    code="E_EXPAND_UNKNOWN_FORMAT",
                    message=f"unknown format: {format} (choose one of: text, json)",
                    path="format",
                )
            ]
        )
        raise typer.Exit(code=2)

    try:
        raw = load_plan(path)
    except PlanLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    plan, errors = validate_plan(raw)
    if errors or plan is None:
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    try:
        options: dict[str, Any] = {"seed": plan.seed}
        if config_file:
            options.update(load_config_file(config_file))
        flags = {"max_expand": max_expand, "log_level": log_level}
        options.update({k: v for k, v in flags.items() if v is not None})
        config = merged_config(options)
    except FileNotFoundError:
        _print_errors(
            [
                PlanLoadError(
                    code="E_CONFIG_FILE_NOT_FOUND",
                    message=f"config file not found: {config_file}",
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=1)
    except SessionConfigError as e:
        _print_errors(
            [
                PlanValidationError(
                    code="E_CONFIG_INVALID",
                    message=str(e),
                    file=config_file,
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=2)

    _setup_logging(config.log_level)
    result = preview_expansion(plan, config)

    if out:
        p = Path(out)
        if str(p.parent) not in (".", ""):
            p.parent.mkdir(parents=True, exist_ok=True)
        dump_expansion_yaml(expansion_to_dict(plan, result), str(p))

    if format == "json":
        payload = {
            "tool": "fanout",
            "command": "expand",
            "ok": result.ok,
            "max_expand": config.max_expand,
            "targets": [
                {
                    "target": t.target,
                    "kind": t.kind,
                    "status": t.status,
                    "subtargets": t.subtargets,
                    "build": t.build,
                    "reason": t.reason,
                }
                for t in result.targets
                if t.kind not in ("value", "command")
            ],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    else:
        for t in result.targets:
            if t.status == "expanded":
                typer.echo(f"{t.target} [{t.kind}]: {len(t.subtargets)} sub-targets")
                for s in t.subtargets:
                    typer.echo(f"  - {s}")
            elif t.status in ("pending", "error"):
                typer.echo(f"{t.target} [{t.kind}]: {t.status} ({t.reason})")
        if out:
            typer.echo(f"OK: wrote expanded plan to {out}")

    if not result.ok:
        raise typer.Exit(code=2)


def _to_item(e: BuildError) -> dict:
    source = "load" if isinstance(e, PlanLoadError) else "validate"
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": "error",
        "source": source,
    }


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _print_errors(errors: list[BuildError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="fanout")


if __name__ == "__main__":
    main()
