from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Iterable

from chupgrade.config.load import ConfigError, load_config
from chupgrade.config.model import Config, Inventory
from chupgrade.core import events as ev
from chupgrade.core.errors import UpgradeError
from chupgrade.core.executor import ExecutionReport
from chupgrade.core.orchestrator import InvokerFactory, Orchestrator, drush_invoker_factory
from chupgrade.core.progress import ProgressStore
from chupgrade.core.stages import (
    LIFT_SUPPORT_POSITION,
    LIFT_SUPPORT_STAGE,
    PREPARE_STAGES,
    UPGRADE_STAGES,
)
from chupgrade.inventory import SiteInventory

COMMANDS = ("prepare", "upgrade")

_HINTS = {
    "discovery_error": "Check the inventory source (--sites or inventory in chupgrade.yaml).",
    "checkpoint_error": "Point --checkpoint at a writable location.",
    "stale_checkpoint": "Run `chupgrade reset {command}` to discard the old checkpoint.",
    "remote_error": "Fix the failing site and re-run; the run resumes from the checkpoint.",
}


def build_orchestrator(
    command: str,
    config: Config,
    *,
    base_dir: Path,
    invoker_factory: InvokerFactory | None = None,
) -> Orchestrator:
    if command not in COMMANDS:
        raise ValueError(f"Unknown upgrade command: {command}")
    inventory = SiteInventory(config.inventory, base_dir=base_dir, docroot=config.drush.docroot)
    factory = invoker_factory or drush_invoker_factory(config.drush.cmd, config.drush.timeout_s)
    store_path = Path(getattr(config.checkpoints, command))
    if not store_path.is_absolute():
        store_path = base_dir / store_path
    if command == "prepare":
        return Orchestrator(
            "prepare",
            PREPARE_STAGES,
            store_path=store_path,
            inventory=inventory,
            invoker_factory=factory,
            fail_fast=config.fail_fast,
        )
    return Orchestrator(
        "upgrade",
        UPGRADE_STAGES,
        store_path=store_path,
        inventory=inventory,
        invoker_factory=factory,
        conditional_stage=LIFT_SUPPORT_STAGE,
        conditional_position=LIFT_SUPPORT_POSITION,
        fail_fast=config.fail_fast,
    )


def apply_overrides(
    config: Config,
    *,
    sites: Path | None = None,
    checkpoint: Path | None = None,
    command: str | None = None,
    lift_support: bool | None = None,
    fail_fast: bool | None = None,
) -> Config:
    update: dict[str, Any] = {}
    if sites is not None:
        update["inventory"] = Inventory(type="file", with_={"path": str(sites)})
    if checkpoint is not None and command in COMMANDS:
        update["checkpoints"] = config.checkpoints.model_copy(update={command: str(checkpoint)})
    if lift_support is not None:
        update["lift_support"] = lift_support
    if fail_fast is not None:
        update["fail_fast"] = fail_fast
    return config.model_copy(update=update)


def run_command_events(
    command: str,
    *,
    base_dir: Path,
    config_path: Path | None = None,
    sites: Path | None = None,
    checkpoint: Path | None = None,
    lift_support: bool | None = None,
    fail_fast: bool | None = None,
    invoker_factory: InvokerFactory | None = None,
) -> Iterable[ev.UpgradeEvent]:
    base_dir = base_dir.resolve()
    options = {
        "sites": str(sites) if sites else None,
        "checkpoint": str(checkpoint) if checkpoint else None,
        "lift_support": lift_support,
        "fail_fast": fail_fast,
    }
    yield ev.CommandStarted(command=command, config_path=config_path, options=options)

    config = yield from _load_config(command, base_dir, config_path)
    if config is None:
        return
    config = apply_overrides(
        config,
        sites=sites,
        checkpoint=checkpoint,
        command=command,
        lift_support=lift_support,
        fail_fast=fail_fast,
    )
    orchestrator = build_orchestrator(command, config, base_dir=base_dir, invoker_factory=invoker_factory)
    flag = config.lift_support if command == "upgrade" else False

    runner = orchestrator.iter_run(flag)
    stage_id = "discover_sites"
    started = time.perf_counter()
    report: ExecutionReport | None = None
    try:
        while True:
            try:
                item = next(runner)
            except StopIteration as stop:
                report = stop.value
                break
            if isinstance(item, ev.StageStarted):
                stage_id = item.stage_id
                started = time.perf_counter()
            yield item
    except (UpgradeError, ValueError) as exc:
        yield _stage_failed(command, stage_id, started, exc)
        yield ev.CommandCompleted(command=command, ok=False, exit_code=2)
        return

    yield _summary(command, report)
    if report.failed:
        yield ev.CommandCompleted(command=command, ok=False, exit_code=1)
        return
    yield ev.CommandCompleted(command=command, ok=True, exit_code=0)


def prepare_events(**kwargs: Any) -> Iterable[ev.UpgradeEvent]:
    return run_command_events("prepare", **kwargs)


def upgrade_events(**kwargs: Any) -> Iterable[ev.UpgradeEvent]:
    return run_command_events("upgrade", **kwargs)


def status_events(
    command: str,
    *,
    base_dir: Path,
    config_path: Path | None = None,
    sites: Path | None = None,
    checkpoint: Path | None = None,
    lift_support: bool | None = None,
) -> Iterable[ev.UpgradeEvent]:
    base_dir = base_dir.resolve()
    yield ev.CommandStarted(command=command, config_path=config_path, options={"status": True})
    config = yield from _load_config(command, base_dir, config_path)
    if config is None:
        return
    config = apply_overrides(
        config, sites=sites, checkpoint=checkpoint, command=command, lift_support=lift_support
    )
    orchestrator = build_orchestrator(command, config, base_dir=base_dir)
    flag = config.lift_support if command == "upgrade" else False

    yield ev.StageStarted(command=command, stage_id="build_plan", label="Build plan")
    started = time.perf_counter()
    try:
        state = orchestrator.describe(flag)
    except UpgradeError as exc:
        yield _stage_failed(command, "build_plan", started, exc)
        yield ev.CommandCompleted(command=command, ok=False, exit_code=2)
        return
    yield ev.StageCompleted(
        command=command,
        stage_id="build_plan",
        duration_ms=(time.perf_counter() - started) * 1000,
    )
    resume = state.checkpoint
    yield ev.PlanSummary(
        command=command,
        entries=[
            {
                "index": entry.index,
                "stage": entry.stage_name,
                "site": entry.site.uri if entry.site else None,
                "pending": not (resume > 0 and entry.index < resume),
            }
            for entry in state.plan
        ],
        resume_index=resume,
        checkpoint_present=state.store.exists,
    )
    yield ev.CommandCompleted(command=command, ok=True, exit_code=0)


def reset_events(
    command: str,
    *,
    base_dir: Path,
    config_path: Path | None = None,
    checkpoint: Path | None = None,
) -> Iterable[ev.UpgradeEvent]:
    base_dir = base_dir.resolve()
    yield ev.CommandStarted(command=command, config_path=config_path, options={"reset": True})
    config = yield from _load_config(command, base_dir, config_path)
    if config is None:
        return
    config = apply_overrides(config, checkpoint=checkpoint, command=command)
    store_path = Path(getattr(config.checkpoints, command))
    if not store_path.is_absolute():
        store_path = base_dir / store_path

    yield ev.StageStarted(command=command, stage_id="clear_checkpoint", label="Clear checkpoint")
    started = time.perf_counter()
    try:
        store = ProgressStore(store_path)
        present = store.exists
        store.clear()
    except UpgradeError as exc:
        yield _stage_failed(command, "clear_checkpoint", started, exc)
        yield ev.CommandCompleted(command=command, ok=False, exit_code=2)
        return
    if present:
        yield ev.CheckpointCleared(command=command, path=store_path)
    yield ev.StageCompleted(
        command=command,
        stage_id="clear_checkpoint",
        duration_ms=(time.perf_counter() - started) * 1000,
        status="success" if present else "skipped",
    )
    yield ev.CommandCompleted(command=command, ok=True, exit_code=0)


def _load_config(command: str, base_dir: Path, config_path: Path | None):
    yield ev.StageStarted(command=command, stage_id="load_config", label="Load config")
    started = time.perf_counter()
    try:
        config = load_config(base_dir, config_path)
    except ConfigError as exc:
        yield ev.StageFailed(
            command=command,
            stage_id="load_config",
            duration_ms=(time.perf_counter() - started) * 1000,
            error_code="config_error",
            message=str(exc),
        )
        yield ev.CommandCompleted(command=command, ok=False, exit_code=2)
        return None
    yield ev.StageCompleted(
        command=command,
        stage_id="load_config",
        duration_ms=(time.perf_counter() - started) * 1000,
    )
    return config


def _stage_failed(command: str, stage_id: str, started: float, exc: Exception) -> ev.StageFailed:
    error_code = getattr(exc, "error_code", "plan_error")
    hint = _HINTS.get(error_code)
    return ev.StageFailed(
        command=command,
        stage_id=stage_id,
        duration_ms=(time.perf_counter() - started) * 1000,
        error_code=error_code,
        message=str(exc),
        hint=hint.format(command=command) if hint else None,
    )


def _summary(command: str, report: ExecutionReport) -> ev.RunSummary:
    return ev.RunSummary(
        command=command,
        total=report.total,
        succeeded=len(report.succeeded),
        skipped_checkpoint=len(report.skipped_checkpoint),
        skipped_gate=len(report.skipped_gate),
        failed=[
            {
                "index": outcome.entry.index,
                "stage": outcome.entry.stage_name,
                "site": outcome.entry.site.uri if outcome.entry.site else None,
                "error": str(outcome.error) if outcome.error else "",
            }
            for outcome in report.failed
        ],
    )
