from __future__ import annotations

from enum import Enum
from pathlib import Path

import typer
from rich.console import Console

from chupgrade.cli.renderers import (
    JsonLinesRenderer,
    StatusPlainRenderer,
    StatusRichRenderer,
    run_events,
)
from chupgrade.cli.upgrade import (
    CHECKPOINT_OPTION,
    CONFIG_OPTION,
    JSON_OPTION,
    PROJECT_OPTION,
    SITES_OPTION,
)
from chupgrade.core.commands import reset_events, status_events

console = Console()


class UpgradeCommand(str, Enum):
    prepare = "prepare"
    upgrade = "upgrade"


def status(
    command: UpgradeCommand = typer.Argument(
        UpgradeCommand.upgrade,
        help="Which run to inspect.",
    ),
    config: Path | None = CONFIG_OPTION,
    project: Path = PROJECT_OPTION,
    sites: Path | None = SITES_OPTION,
    checkpoint: Path | None = CHECKPOINT_OPTION,
    lift_support: bool | None = typer.Option(
        None,
        "--lift-support/--no-lift-support",
        help="Build the plan as `upgrade --lift-support` would.",
    ),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the plan, the stored checkpoint and where a re-run resumes."""
    events = status_events(
        command.value,
        base_dir=project,
        config_path=config,
        sites=sites,
        checkpoint=checkpoint,
        lift_support=lift_support,
    )
    _run(events, json_output)


def reset(
    command: UpgradeCommand = typer.Argument(
        ...,
        help="Which run's checkpoint to discard.",
    ),
    config: Path | None = CONFIG_OPTION,
    project: Path = PROJECT_OPTION,
    checkpoint: Path | None = CHECKPOINT_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Discard a stored checkpoint so the next run starts from the beginning."""
    events = reset_events(
        command.value,
        base_dir=project,
        config_path=config,
        checkpoint=checkpoint,
    )
    _run(events, json_output)


def _run(events, json_output: bool) -> None:
    if json_output:
        renderer = JsonLinesRenderer(console)
    else:
        renderer = StatusRichRenderer(console) if console.is_terminal else StatusPlainRenderer(console)
    exit_code = run_events(events, renderer)
    raise typer.Exit(code=exit_code)
