"""CLI commands for staging and patching vendored source trees."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import NoReturn, Optional

import typer

from .config import DEFAULT_CONFIG_NAME, load_config, write_default_config
from .errors import VendorPrepError
from .features import features_from_env, select_page_size
from .pipeline import prepare_vendor_tree, signals_from_config
from .tools.patch import apply_patches
from .tools.signals import DependencySignals
from .tools.staging import DEFAULT_HIDDEN_PREFIX, stage_tree

APP_HELP = "Stage vendored sources and apply their unified-diff patches."

app = typer.Typer(help=APP_HELP)


def _fail(error: VendorPrepError) -> NoReturn:
    typer.echo(f"error: {error}", err=True)
    raise typer.Exit(code=1) from error


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help="Logging level for progress and telemetry output (DEBUG, INFO, WARNING, ERROR).",
    ),
) -> None:
    """Configure logging before any command runs."""
    level = logging.getLevelName(log_level.strip().upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}", param_hint="--log-level")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path of the configuration file to create.",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a default pipeline configuration."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    write_default_config(config_path)
    typer.echo(f"Created configuration at {config_path}.")


@app.command()
def stage(
    source: Path = typer.Argument(..., help="Pristine source tree to copy."),
    dest: Path = typer.Argument(..., help="Destination directory for the staged copy."),
    hidden_prefix: str = typer.Option(
        DEFAULT_HIDDEN_PREFIX,
        "--hidden-prefix",
        help="Skip entries whose names start with this prefix (empty disables filtering).",
    ),
    signals: bool = typer.Option(
        False,
        "--signals/--no-signals",
        help="Print a rerun-if-changed line for every staged file.",
    ),
) -> None:
    """Mirror SOURCE into DEST with owner-writable files."""
    sink = DependencySignals(quiet=not signals)
    try:
        report = stage_tree(source, dest, hidden_prefix=hidden_prefix, signals=sink)
    except VendorPrepError as error:
        _fail(error)
    typer.echo(f"Staged {len(report.files)} file(s) into {report.dest_root}")


@app.command()
def patch(
    patch_root: Path = typer.Argument(..., help="Directory of patch files mirroring the target tree."),
    target: Path = typer.Argument(..., help="Staged tree to patch in place."),
    hidden_prefix: str = typer.Option(
        DEFAULT_HIDDEN_PREFIX,
        "--hidden-prefix",
        help="Skip patch entries whose names start with this prefix.",
    ),
    signals: bool = typer.Option(
        False,
        "--signals/--no-signals",
        help="Print a rerun-if-changed line for every patch file read.",
    ),
) -> None:
    """Apply every patch under PATCH_ROOT to TARGET."""
    sink = DependencySignals(quiet=not signals)
    try:
        report = apply_patches(patch_root, target, hidden_prefix=hidden_prefix, signals=sink)
    except VendorPrepError as error:
        _fail(error)
    for outcome in report.outcomes:
        typer.echo(f"- {outcome.action}: {outcome.path.as_posix()}")
    typer.echo(f"Applied {len(report.patch_files)} patch file(s) to {report.target_root}")


@app.command()
def prepare(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the pipeline configuration file.",
    ),
    signals: Optional[bool] = typer.Option(
        None,
        "--signals/--no-signals",
        help="Override signals.enabled from the configuration.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the pipeline result as JSON."),
) -> None:
    """Stage the configured source tree and apply its patches."""
    try:
        pipeline_config = load_config(Path(config))
        sink = signals_from_config(pipeline_config)
        if signals is not None:
            sink.quiet = not signals
        if as_json:
            # Keep stdout parseable.
            sink.stream = sys.stderr
        result = prepare_vendor_tree(pipeline_config, signals=sink)
    except VendorPrepError as error:
        _fail(error)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    typer.echo(f"Staged {len(result.staging.files)} file(s) into {result.staged_root}")
    if result.patching is not None:
        typer.echo(
            f"Applied {len(result.patching.patch_files)} patch file(s) "
            f"({len(result.patching.outcomes)} file change(s))"
        )
    if result.page_size is not None:
        typer.echo(f"Page size: {result.page_size.value} ({result.page_size.define})")


@app.command()
def status(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the pipeline configuration file.",
    ),
    from_env: bool = typer.Option(
        False,
        "--from-env",
        help="Select the page size from CARGO_FEATURE_* variables instead of the config.",
    ),
) -> None:
    """Validate configuration and report the resolved paths."""
    try:
        pipeline_config = load_config(Path(config))
        if from_env:
            page_size = select_page_size(features_from_env())
        else:
            page_size = pipeline_config.page_size()
    except VendorPrepError as error:
        _fail(error)

    paths = pipeline_config.paths
    typer.echo(f"Loaded configuration from {config}")
    typer.echo(f"Source: {paths.source}")
    typer.echo(f"Patches: {paths.patches if paths.patches is not None else 'none'}")
    typer.echo(f"Output: {paths.output}")
    if page_size is not None:
        typer.echo(f"Page size: {page_size.value} ({page_size.define})")
    else:
        typer.echo("Page size: not configured")


if __name__ == "__main__":
    app()
