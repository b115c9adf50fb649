from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from chupgrade.cli.renderers import (
    JsonLinesRenderer,
    Renderer,
    UpgradePlainRenderer,
    UpgradeRichRenderer,
    run_events,
)
from chupgrade.core.commands import prepare_events, upgrade_events

console = Console()

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to chupgrade.yaml (defaults to ./chupgrade.yaml when present).",
)
PROJECT_OPTION = typer.Option(
    Path("."),
    "--project",
    "-p",
    help="Base directory for relative paths.",
)
SITES_OPTION = typer.Option(
    None,
    "--sites",
    help="Site Factory sites.json to read the farm from (overrides inventory).",
)
CHECKPOINT_OPTION = typer.Option(
    None,
    "--checkpoint",
    help="Checkpoint file for this command (overrides checkpoints in config).",
)
FAIL_FAST_OPTION = typer.Option(
    None,
    "--fail-fast/--no-fail-fast",
    help="Abort on the first failed remote command instead of recording it.",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit one JSON event per line.",
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Show every remote command and resumed entry.",
)
DEBUG_OPTION = typer.Option(
    False,
    "--debug",
    help="Show stack traces for unexpected errors.",
)


def prepare(
    config: Path | None = CONFIG_OPTION,
    project: Path = PROJECT_OPTION,
    sites: Path | None = SITES_OPTION,
    checkpoint: Path | None = CHECKPOINT_OPTION,
    fail_fast: bool | None = FAIL_FAST_OPTION,
    json_output: bool = JSON_OPTION,
    verbose: bool = VERBOSE_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Prepare every site of the farm for the 2.x upgrade."""
    events = prepare_events(
        base_dir=project,
        config_path=config,
        sites=sites,
        checkpoint=checkpoint,
        fail_fast=fail_fast,
    )
    _run(events, json_output=json_output, verbose=verbose, debug=debug)


def upgrade(
    config: Path | None = CONFIG_OPTION,
    project: Path = PROJECT_OPTION,
    sites: Path | None = SITES_OPTION,
    checkpoint: Path | None = CHECKPOINT_OPTION,
    lift_support: bool | None = typer.Option(
        None,
        "--lift-support/--no-lift-support",
        help="Also install the Lift publisher support module on every site.",
    ),
    fail_fast: bool | None = FAIL_FAST_OPTION,
    json_output: bool = JSON_OPTION,
    verbose: bool = VERBOSE_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Run the 1.x to 2.x upgrade on every site of the farm."""
    events = upgrade_events(
        base_dir=project,
        config_path=config,
        sites=sites,
        checkpoint=checkpoint,
        lift_support=lift_support,
        fail_fast=fail_fast,
    )
    _run(events, json_output=json_output, verbose=verbose, debug=debug)


def _renderer(json_output: bool, verbose: bool) -> Renderer:
    if json_output:
        return JsonLinesRenderer(console, include_debug=verbose)
    if console.is_terminal:
        return UpgradeRichRenderer(console, verbose=verbose)
    return UpgradePlainRenderer(console, verbose=verbose)


def _run(events, *, json_output: bool, verbose: bool, debug: bool) -> None:
    try:
        exit_code = run_events(events, _renderer(json_output, verbose))
    except Exception as exc:  # noqa: BLE001
        if debug:
            raise
        console.print(f"[red]Unexpected error:[/red] {exc}")
        raise typer.Exit(code=3)
    raise typer.Exit(code=exit_code)
