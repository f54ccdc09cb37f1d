from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer

from casetag.config import casetag_defaults, merge_payload
from casetag.directives import vocabulary
from casetag.schema import DirectiveDTO, transform_response
from casetag.transform.engine import TransformConfig, TransformEngine, apply_edits
from casetag.transform.model import TransformPlan

app = typer.Typer(add_completion=False)

EXIT_DRIFT = 1
EXIT_ERRORS = 2

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=_LOG_FORMAT,
    )


def _write_output(payload: str, output_path: Optional[Path]) -> None:
    if output_path is None:
        typer.echo(payload)
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(payload + "\n", encoding="utf-8")


def build_config(
    *,
    root: Path,
    config: Optional[Path],
    strict: Optional[bool],
    exclude: Optional[List[str]],
) -> TransformConfig:
    defaults = casetag_defaults(root=root, config_path=config)
    payload = merge_payload({"strict": strict, "exclude": exclude}, defaults)
    return TransformConfig.from_table(payload)


def _exit_code(plan: TransformPlan, *, check: bool) -> int:
    if plan.errors:
        return EXIT_ERRORS
    if check and plan.edits:
        return EXIT_DRIFT
    return 0


@app.command("generate")
def generate(
    paths: List[Path] = typer.Argument(..., help="Python files or directories to transform."),
    root: Path = typer.Option(Path("."), "--root", help="Directory holding casetag.toml."),
    config: Optional[Path] = typer.Option(None, "--config"),
    write: bool = typer.Option(False, "--write", help="Apply the edits in place."),
    check: bool = typer.Option(
        False, "--check", help="Exit 1 when any file is out of date; write nothing."
    ),
    strict: Optional[bool] = typer.Option(
        None,
        "--strict/--no-strict",
        help="Reject conflicting directives and display_from_value shape mismatches.",
    ),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude"),
    output_path: Optional[Path] = typer.Option(
        None, "--output", help="Write the JSON response to this path."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Generate companion enums for every casetag source type under PATHS."""
    _configure_logging(verbose)
    if write and check:
        raise typer.BadParameter("--write and --check cannot be combined.")
    transform_config = build_config(root=root, config=config, strict=strict, exclude=exclude)
    plan = TransformEngine(transform_config).plan_paths(paths)
    for error in plan.errors:
        typer.echo(error, err=True)
    for warning in plan.warnings:
        typer.echo(f"warning: {warning}", err=True)
    if write and plan.edits:
        written = apply_edits(plan.edits)
        typer.echo(f"wrote {len(written)} file(s)", err=True)
    response = transform_response(plan, include_edits=not write)
    _write_output(json.dumps(response.model_dump(), indent=2, sort_keys=True), output_path)
    raise typer.Exit(code=_exit_code(plan, check=check))


@app.command("directives")
def directives(
    as_json: bool = typer.Option(False, "--json", help="Emit the vocabulary as JSON."),
) -> None:
    """List every directive key accepted in a `# casetag:` pragma."""
    entries = [
        DirectiveDTO(
            key=str(kind),
            form=f'{kind} = "..."' if kind.takes_value else str(kind),
            description=kind.description,
        )
        for kind in vocabulary()
    ]
    if as_json:
        typer.echo(json.dumps([entry.model_dump() for entry in entries], indent=2))
        return
    width = max(len(entry.form) for entry in entries)
    for entry in entries:
        typer.echo(f"{entry.form.ljust(width)}  {entry.description}")
