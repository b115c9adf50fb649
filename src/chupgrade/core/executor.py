from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Generator, Mapping

from chupgrade.core import events as ev
from chupgrade.core.actions import ACTIONS, GATES, Action, ActionContext, Gate
from chupgrade.core.errors import PlanLookupError, RemoteActionFailure
from chupgrade.core.invoker import RemoteActionInvoker
from chupgrade.core.plan import Plan, PlanEntry, Site
from chupgrade.core.progress import ProgressStore

SUCCEEDED = "succeeded"
SKIPPED_CHECKPOINT = "skipped_checkpoint"
SKIPPED_GATE = "skipped_gate"
FAILED = "failed"


@dataclass(frozen=True)
class EntryOutcome:
    entry: PlanEntry
    status: str
    error: RemoteActionFailure | None = None
    message: str | None = None
    gate_passed: bool | None = None


@dataclass
class ExecutionReport:
    total: int = 0
    start_index: int = 0
    outcomes: list[EntryOutcome] = field(default_factory=list)

    def _with_status(self, status: str) -> list[EntryOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == status]

    @property
    def succeeded(self) -> list[EntryOutcome]:
        return self._with_status(SUCCEEDED)

    @property
    def skipped_checkpoint(self) -> list[EntryOutcome]:
        return self._with_status(SKIPPED_CHECKPOINT)

    @property
    def skipped_gate(self) -> list[EntryOutcome]:
        return self._with_status(SKIPPED_GATE)

    @property
    def failed(self) -> list[EntryOutcome]:
        return self._with_status(FAILED)

    @property
    def completed(self) -> bool:
        return len(self.outcomes) == self.total

    @property
    def ok(self) -> bool:
        return self.completed and not self.failed


RunEvents = Generator[ev.UpgradeEvent, None, ExecutionReport]


class StageExecutor:
    """Walks a plan in index order, one entry at a time.

    Entries before ``start_index`` are skipped; the entry at ``start_index``
    is re-executed, so remote actions must tolerate running twice. Remote
    failures are recorded and the walk goes on unless ``fail_fast`` is set.
    The checkpoint is saved after every processed entry.
    """

    def __init__(
        self,
        store: ProgressStore,
        *,
        sites: tuple[Site, ...],
        actions: Mapping[str, Action] | None = None,
        gates: Mapping[str, Gate] | None = None,
        fail_fast: bool = False,
        command: str = "",
    ):
        self.store = store
        self.sites = sites
        self.actions = ACTIONS if actions is None else actions
        self.gates = GATES if gates is None else gates
        self.fail_fast = fail_fast
        self.command = command

    def run(self, plan: Plan, start_index: int, invoker: RemoteActionInvoker) -> ExecutionReport:
        runner = self.iter_run(plan, start_index, invoker)
        while True:
            try:
                next(runner)
            except StopIteration as stop:
                return stop.value

    def iter_run(self, plan: Plan, start_index: int, invoker: RemoteActionInvoker) -> RunEvents:
        self._check_plan(plan)
        report = ExecutionReport(total=len(plan), start_index=start_index)
        total = len(plan)
        for entry in plan:
            site_uri = entry.site.uri if entry.site else None
            if start_index > 0 and entry.index < start_index:
                report.outcomes.append(EntryOutcome(entry=entry, status=SKIPPED_CHECKPOINT))
                yield ev.EntryCompleted(
                    command=self.command,
                    index=entry.index,
                    total=total,
                    stage_id=entry.stage_name,
                    site=site_uri,
                    status=SKIPPED_CHECKPOINT,
                )
                continue

            yield ev.EntryStarted(
                command=self.command,
                index=entry.index,
                total=total,
                stage_id=entry.stage_name,
                site=site_uri,
            )
            started = time.perf_counter()
            ctx = ActionContext(invoker=invoker, site=entry.site or self.sites[0])
            outcome = self._process(plan, entry, ctx)
            for item in self._command_events(entry, ctx):
                yield item
            if outcome.gate_passed is not None:
                yield ev.GateEvaluated(
                    command=self.command,
                    index=entry.index,
                    gate=plan.stage(entry.stage_name).gate or "",
                    site=site_uri,
                    passed=outcome.gate_passed,
                )
            report.outcomes.append(outcome)
            yield ev.EntryCompleted(
                command=self.command,
                level="ERROR" if outcome.status == FAILED else "INFO",
                index=entry.index,
                total=total,
                stage_id=entry.stage_name,
                site=site_uri,
                status=outcome.status,
                duration_ms=_elapsed_ms(started),
                message=str(outcome.error) if outcome.error else outcome.message,
            )
            if outcome.error is not None and self.fail_fast:
                raise outcome.error

            self.store.save(entry.index)
            yield ev.CheckpointSaved(command=self.command, path=self.store.path, index=entry.index)
        return report

    def _process(self, plan: Plan, entry: PlanEntry, ctx: ActionContext) -> EntryOutcome:
        stage = plan.stage(entry.stage_name)
        gate_passed: bool | None = None
        try:
            if stage.gate:
                gate_passed = self.gates[stage.gate](ctx)
                if not gate_passed:
                    return EntryOutcome(
                        entry=entry,
                        status=SKIPPED_GATE,
                        message=f"not a {stage.gate}",
                        gate_passed=False,
                    )
            message = self.actions[stage.name](ctx)
        except RemoteActionFailure as exc:
            return EntryOutcome(entry=entry, status=FAILED, error=exc, gate_passed=gate_passed)
        return EntryOutcome(entry=entry, status=SUCCEEDED, message=message, gate_passed=gate_passed)

    def _check_plan(self, plan: Plan) -> None:
        for stage in plan.stages:
            if stage.name not in self.actions:
                raise PlanLookupError(f"No action registered for stage {stage.name!r}.")
            if stage.gate and stage.gate not in self.gates:
                raise PlanLookupError(f"No gate registered as {stage.gate!r}.")
        if len(plan) and not self.sites:
            raise PlanLookupError("A plan with entries needs at least one site.")

    def _command_events(self, entry: PlanEntry, ctx: ActionContext) -> list[ev.UpgradeEvent]:
        return [
            ev.RemoteCommandCompleted(
                command=self.command,
                level="DEBUG" if record.result.ok else "ERROR",
                index=entry.index,
                site=ctx.site.uri,
                remote_command=record.command,
                arguments=list(record.arguments),
                error_status=record.result.error_status,
                output=record.result.output,
            )
            for record in ctx.calls
        ]


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
