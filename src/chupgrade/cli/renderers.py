from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from rich import box
from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from chupgrade import __version__
from chupgrade.core import events as ev
from chupgrade.core.stages import COMMAND_STEPS, STAGE_LABELS

RULE_WIDTH = 64
RULE_LINE = "-" * RULE_WIDTH
STATUS_GLYPHS = {
    "pending": "⏸",
    "running": "⠋",
    "success": "✅",
    "succeeded": "✅",
    "failed": "❌",
    "skipped": "⏭",
    "skipped_checkpoint": "⏭",
    "skipped_gate": "⤼",
    "partial": "⚠️",
    "warning": "⚠️",
}

ENTRY_WORDS = {
    "succeeded": "OK",
    "skipped_checkpoint": "SKIP (checkpoint)",
    "skipped_gate": "SKIP (gate)",
    "failed": "FAIL",
}


def run_events(events: Iterable[ev.UpgradeEvent], renderer: "Renderer") -> int:
    exit_code = 0
    try:
        for event in events:
            renderer.handle(event)
            if isinstance(event, ev.CommandCompleted):
                exit_code = event.exit_code
    finally:
        renderer.close()
    return exit_code


class Renderer:
    def handle(self, event: ev.UpgradeEvent) -> None:  # noqa: D401
        """Handle a single event."""

    def close(self) -> None:
        return None


@dataclass
class StageState:
    name: str
    label: str
    done: int = 0
    failed: int = 0
    skipped: int = 0


class UpgradeRichRenderer(Renderer):
    def __init__(self, console: Console, *, verbose: bool = False):
        self.console = console
        self.verbose = verbose
        self.steps = {step_id: "pending" for step_id, _ in COMMAND_STEPS}
        self.stages: dict[str, StageState] = {}
        self._live: Live | None = None
        self._failure: ev.StageFailed | None = None
        self._summary: ev.RunSummary | None = None

    def handle(self, event: ev.UpgradeEvent) -> None:
        if isinstance(event, ev.CommandStarted):
            _print_header(self.console, event)
            self._live = Live(self._render(), console=self.console, refresh_per_second=10)
            self._live.__enter__()
            return
        if isinstance(event, ev.StageStarted):
            self.steps[event.stage_id] = "running"
            self._refresh()
            return
        if isinstance(event, ev.StageCompleted):
            self.steps[event.stage_id] = event.status
            self._refresh()
            return
        if isinstance(event, ev.StageFailed):
            self.steps[event.stage_id] = "failed"
            self._failure = event
            self._refresh()
            return
        if isinstance(event, ev.SitesDiscovered):
            self.console.print(f"Alias: {event.alias} | sites: {len(event.sites)}")
            return
        if isinstance(event, ev.PlanBuilt):
            for stage in event.stages:
                self.stages[stage["name"]] = StageState(name=stage["name"], label=stage["label"])
            self._refresh()
            return
        if isinstance(event, ev.CheckpointLoaded):
            if event.present:
                self.console.print(f"Resuming from checkpoint {event.index} ({event.path})")
            return
        if isinstance(event, ev.EntryCompleted):
            self._on_entry(event)
            return
        if isinstance(event, ev.RemoteCommandCompleted):
            if self.verbose or event.error_status != 0:
                self.console.print(_format_remote_line(event), style="dim" if event.error_status == 0 else "red")
            return
        if isinstance(event, ev.Warning):
            self.console.print(f"[yellow]Warning:[/yellow] {_redact(event.message)}")
            return
        if isinstance(event, ev.RunSummary):
            self._summary = event
            return
        if isinstance(event, ev.CommandCompleted):
            self._finish(event)

    def close(self) -> None:
        if self._live:
            self._live.__exit__(None, None, None)
            self._live = None

    def _stage(self, name: str) -> StageState:
        return self.stages.setdefault(name, StageState(name=name, label=STAGE_LABELS.get(name, name)))

    def _on_entry(self, event: ev.EntryCompleted) -> None:
        state = self._stage(event.stage_id)
        if event.status == "failed":
            state.failed += 1
        elif event.status.startswith("skipped"):
            state.skipped += 1
        else:
            state.done += 1
        if event.status != "skipped_checkpoint" or self.verbose:
            self.console.print(_format_entry_line(event))
        self._refresh()

    def _finish(self, event: ev.CommandCompleted) -> None:
        self.close()
        if self._failure and not event.ok:
            self.console.print(_stage_failure_panel(self._failure))
            return
        if self._summary:
            self.console.print(_summary_panel(self._summary, ok=event.ok))

    def _refresh(self) -> None:
        if self._live:
            self._live.update(self._render())

    def _render(self) -> Group:
        steps = Table(show_header=False, box=box.MINIMAL)
        steps.add_column("#", justify="right", style="dim")
        steps.add_column("Step")
        steps.add_column("Status")
        total = len(COMMAND_STEPS)
        for index, (step_id, label) in enumerate(COMMAND_STEPS, start=1):
            status = self.steps.get(step_id, "pending")
            steps.add_row(f"{index}/{total}", label, _status_text(status))
        renderables: list = [Panel(steps, title="Steps", box=box.ROUNDED, title_align="left")]
        if self.stages:
            renderables.append(Panel(_stages_table(self.stages.values()), title="Stages", box=box.ROUNDED, title_align="left"))
        return Group(*renderables)


class UpgradePlainRenderer(Renderer):
    def __init__(self, console: Console, *, verbose: bool = False):
        self.console = console
        self.verbose = verbose
        self._summary: ev.RunSummary | None = None

    def handle(self, event: ev.UpgradeEvent) -> None:
        if isinstance(event, ev.CommandStarted):
            _print_header(self.console, event)
            return
        if isinstance(event, ev.StageCompleted):
            label = _step_label(event.stage_id)
            self.console.print(f"{label} {_dots(label)} {_status_word(event.status)}  {_format_duration(event.duration_ms)}")
            return
        if isinstance(event, ev.StageFailed):
            label = _step_label(event.stage_id)
            self.console.print(f"{label} {_dots(label)} FAIL")
            self.console.print(f"FAIL: {_redact(event.message)}")
            if event.hint:
                self.console.print(f"HINT: {_redact(event.hint)}")
            return
        if isinstance(event, ev.SitesDiscovered):
            self.console.print(f"Alias {event.alias}: {len(event.sites)} sites")
            return
        if isinstance(event, ev.PlanBuilt):
            self.console.print(f"Plan: {event.total} entries across {len(event.stages)} stages")
            return
        if isinstance(event, ev.CheckpointLoaded):
            if event.present:
                self.console.print(f"Resuming from checkpoint {event.index} ({event.path})")
            return
        if isinstance(event, ev.EntryCompleted):
            if event.status != "skipped_checkpoint" or self.verbose:
                self.console.print(_format_entry_line(event))
            return
        if isinstance(event, ev.RemoteCommandCompleted):
            if self.verbose or event.error_status != 0:
                self.console.print(_format_remote_line(event))
            return
        if isinstance(event, ev.Warning):
            self.console.print(f"Warning: {_redact(event.message)}")
            return
        if isinstance(event, ev.RunSummary):
            self._summary = event
            return
        if isinstance(event, ev.CommandCompleted):
            if self._summary:
                summary = self._summary
                self.console.print(
                    f"SUMMARY total={summary.total} ok={summary.succeeded} "
                    f"skipped_checkpoint={summary.skipped_checkpoint} "
                    f"skipped_gate={summary.skipped_gate} failed={len(summary.failed)}"
                )
                for item in summary.failed:
                    self.console.print(f"FAILED [{item['index']}] {_entry_target(item['stage'], item['site'])}: {_redact(item['error'])}")


class StatusRichRenderer(Renderer):
    def __init__(self, console: Console):
        self.console = console
        self._failure: ev.StageFailed | None = None

    def handle(self, event: ev.UpgradeEvent) -> None:
        if isinstance(event, ev.CommandStarted):
            _print_header(self.console, event)
            return
        if isinstance(event, ev.StageFailed):
            self._failure = event
            return
        if isinstance(event, ev.PlanSummary):
            table = Table(show_header=True, box=box.MINIMAL)
            table.add_column("#", justify="right", style="dim")
            table.add_column("Stage")
            table.add_column("Site")
            table.add_column("State")
            for item in event.entries:
                state = Text("pending") if item["pending"] else Text("done", style="dim")
                if event.checkpoint_present and item["index"] == event.resume_index:
                    state = Text("resume here", style="bold yellow")
                table.add_row(str(item["index"]), STAGE_LABELS.get(item["stage"], item["stage"]), item["site"] or "-", state)
            title = "Checkpoint: none" if not event.checkpoint_present else f"Checkpoint: {event.resume_index}"
            self.console.print(Panel(table, title=title, box=box.ROUNDED, title_align="left"))
            return
        if isinstance(event, ev.CheckpointCleared):
            self.console.print(f"[green]Checkpoint removed:[/green] {event.path}")
            return
        if isinstance(event, ev.StageCompleted) and event.stage_id == "clear_checkpoint" and event.status == "skipped":
            self.console.print("No checkpoint to remove.")
            return
        if isinstance(event, ev.CommandCompleted) and not event.ok and self._failure:
            self.console.print(_stage_failure_panel(self._failure))


class StatusPlainRenderer(Renderer):
    def __init__(self, console: Console):
        self.console = console

    def handle(self, event: ev.UpgradeEvent) -> None:
        if isinstance(event, ev.PlanSummary):
            checkpoint = event.resume_index if event.checkpoint_present else "none"
            self.console.print(f"checkpoint={checkpoint} entries={len(event.entries)}")
            for item in event.entries:
                state = "pending" if item["pending"] else "done"
                self.console.print(f"[{item['index']}] {_entry_target(item['stage'], item['site'])} {state}")
            return
        if isinstance(event, ev.CheckpointCleared):
            self.console.print(f"Checkpoint removed: {event.path}")
            return
        if isinstance(event, ev.StageCompleted) and event.stage_id == "clear_checkpoint" and event.status == "skipped":
            self.console.print("No checkpoint to remove.")
            return
        if isinstance(event, ev.StageFailed):
            self.console.print(f"Error: {_redact(event.message)}")
            if event.hint:
                self.console.print(f"HINT: {_redact(event.hint)}")


class JsonLinesRenderer(Renderer):
    """One JSON object per event, written as the events arrive."""

    def __init__(self, console: Console, *, include_debug: bool = True):
        self.console = console
        self.include_debug = include_debug

    def handle(self, event: ev.UpgradeEvent) -> None:
        if event.level == "DEBUG" and not self.include_debug:
            return
        payload = event.to_dict()
        payload.pop("ts", None)
        self.console.print(json.dumps(payload, sort_keys=True), markup=False, highlight=False, soft_wrap=True)


def _format_duration(elapsed_ms: float) -> str:
    if elapsed_ms < 1000:
        return f"{elapsed_ms:.0f}ms"
    seconds = elapsed_ms / 1000
    if seconds < 10:
        return f"{seconds:.2f}s"
    return f"{seconds:.1f}s"


def _print_header(console: Console, event: ev.CommandStarted) -> None:
    config = event.config_path or Path("chupgrade.yaml")
    console.print(f"chupgrade v{__version__} | command: {event.command} | config: {config}\n{RULE_LINE}")


_REDACT_PATTERN = re.compile(
    r"(?i)\b(authorization|token|secret|password|api_key)\b\s*[:=]\s*[^\s]+"
)


def _redact(text: str) -> str:
    if not text:
        return text
    return escape(_REDACT_PATTERN.sub(r"\1: <redacted>", text))


def _entry_target(stage_id: str, site: str | None) -> str:
    label = STAGE_LABELS.get(stage_id, stage_id)
    return f"{label} @ {site}" if site else label


def _format_entry_line(event: ev.EntryCompleted) -> str:
    glyph = STATUS_GLYPHS.get(event.status, "?")
    word = ENTRY_WORDS.get(event.status, event.status.upper())
    position = f"[{event.index + 1}/{event.total}]"
    duration = f"  {_format_duration(event.duration_ms)}" if event.duration_ms else ""
    message = f" - {_redact(event.message)}" if event.message else ""
    return f"{position} {_entry_target(event.stage_id, event.site)} {glyph} {word}{duration}{message}"


def _format_remote_line(event: ev.RemoteCommandCompleted) -> str:
    status = "ok" if event.error_status == 0 else f"exit {event.error_status}"
    target = f" ({event.site})" if event.site else ""
    return f"    drush {event.remote_command}{target}: {status}"


def _step_label(step_id: str) -> str:
    for key, label in COMMAND_STEPS:
        if key == step_id:
            return label
    if step_id == "load_config":
        return "Load config"
    return step_id


def _dots(label: str) -> str:
    return "." * max(2, 28 - len(label))


def _status_word(status: str) -> str:
    return {
        "success": "OK",
        "failed": "FAIL",
        "skipped": "SKIP",
        "partial": "PARTIAL",
    }.get(status, status.upper())


def _status_text(status: str) -> Text:
    style = {
        "success": "green",
        "failed": "red",
        "skipped": "bright_black",
        "partial": "orange1",
        "running": "cyan",
    }.get(status, "default")
    glyph = STATUS_GLYPHS.get(status, "")
    return Text(f"{glyph} {status}".strip(), style=style)


def _stages_table(states: Iterable[StageState]) -> Table:
    table = Table(show_header=True, box=box.MINIMAL)
    table.add_column("STAGE", style="bold")
    table.add_column("DONE", justify="right")
    table.add_column("SKIPPED", justify="right")
    table.add_column("FAILED", justify="right")
    for state in states:
        failed = Text(str(state.failed), style="red" if state.failed else "default")
        table.add_row(state.label, str(state.done), str(state.skipped), failed)
    return table


def _summary_panel(summary: ev.RunSummary, *, ok: bool) -> Panel:
    lines = [
        f"Entries:            {summary.total}",
        f"Succeeded:          {summary.succeeded}",
        f"Skipped (resume):   {summary.skipped_checkpoint}",
        f"Skipped (gate):     {summary.skipped_gate}",
        f"Failed:             {len(summary.failed)}",
    ]
    if summary.failed:
        lines.append("")
        for item in summary.failed[:20]:
            lines.append(f"- [{item['index']}] {_entry_target(item['stage'], item['site'])}: {_redact(item['error'])}")
        if len(summary.failed) > 20:
            lines.append(f"...and {len(summary.failed) - 20} more")
    title = f"{summary.command.capitalize()} complete" if ok else "Completed with failures"
    return Panel("\n".join(lines), title=title, box=box.ROUNDED, title_align="left")


def _stage_failure_panel(event: ev.StageFailed) -> Panel:
    body = "\n".join(
        [
            f"step: {event.stage_id}",
            f"error: {_redact(event.message)}",
        ]
    )
    if event.hint:
        body = "\n".join([body, f"hint: {_redact(event.hint)}"])
    return Panel(body, title="Run aborted", box=box.ROUNDED, title_align="left")
