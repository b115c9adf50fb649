from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generator, Mapping, Sequence

from chupgrade.core import events as ev
from chupgrade.core.actions import Action, Gate
from chupgrade.core.executor import ExecutionReport, StageExecutor
from chupgrade.core.invoker import DrushInvoker, RemoteActionInvoker
from chupgrade.core.plan import Plan, PlanBuilder, StageDefinition, splice
from chupgrade.core.progress import ProgressStore
from chupgrade.inventory import FarmConfig, SiteInventory

InvokerFactory = Callable[[FarmConfig], RemoteActionInvoker]
OrchestratorEvents = Generator[ev.UpgradeEvent, None, ExecutionReport]


@dataclass(frozen=True)
class PlanState:
    farm: FarmConfig
    plan: Plan
    store: ProgressStore
    checkpoint: int


def drush_invoker_factory(
    cmd: Sequence[str] = ("drush",),
    timeout_s: float | None = None,
) -> InvokerFactory:
    def factory(farm: FarmConfig) -> RemoteActionInvoker:
        return DrushInvoker(farm.alias, cmd=cmd, timeout_s=timeout_s, docroot=farm.docroot)

    return factory


class Orchestrator:
    """Builds the plan for one upgrade command and drives it to completion.

    At most one orchestrator may run against a checkpoint path at a time.
    """

    def __init__(
        self,
        name: str,
        stages: Sequence[StageDefinition],
        *,
        store_path: Path,
        inventory: SiteInventory,
        invoker_factory: InvokerFactory,
        conditional_stage: StageDefinition | None = None,
        conditional_position: int | None = None,
        actions: Mapping[str, Action] | None = None,
        gates: Mapping[str, Gate] | None = None,
        fail_fast: bool = False,
    ):
        if (conditional_stage is None) != (conditional_position is None):
            raise ValueError("conditional_stage and conditional_position go together.")
        self.name = name
        self.stages = tuple(stages)
        self.store_path = Path(store_path)
        self.inventory = inventory
        self.invoker_factory = invoker_factory
        self.conditional_stage = conditional_stage
        self.conditional_position = conditional_position
        self.actions = actions
        self.gates = gates
        self.fail_fast = fail_fast
        self.builder = PlanBuilder()

    def stage_definitions(self, flag: bool = False) -> tuple[StageDefinition, ...]:
        if flag and self.conditional_stage is not None and self.conditional_position is not None:
            return splice(self.stages, self.conditional_stage, self.conditional_position)
        return self.stages

    def describe(self, flag: bool = False) -> PlanState:
        farm = self.inventory.resolve()
        plan = self.builder.build(self.stage_definitions(flag), farm.sites)
        store = ProgressStore(self.store_path, fingerprint=plan.fingerprint())
        return PlanState(farm=farm, plan=plan, store=store, checkpoint=store.load())

    def run(self, flag: bool = False) -> ExecutionReport:
        runner = self.iter_run(flag)
        while True:
            try:
                next(runner)
            except StopIteration as stop:
                return stop.value

    def iter_run(self, flag: bool = False) -> OrchestratorEvents:
        yield ev.StageStarted(command=self.name, stage_id="discover_sites", label="Discover sites")
        started = time.perf_counter()
        farm = self.inventory.resolve()
        yield ev.SitesDiscovered(
            command=self.name,
            alias=farm.alias,
            sites=[site.uri for site in farm.sites],
            docroot=farm.docroot,
        )
        yield self._completed("discover_sites", started)

        yield ev.StageStarted(command=self.name, stage_id="build_plan", label="Build plan")
        started = time.perf_counter()
        plan = self.builder.build(self.stage_definitions(flag), farm.sites)
        yield ev.PlanBuilt(
            command=self.name,
            stages=[
                {"name": stage.name, "label": stage.title, "per_site": stage.per_site, "gate": stage.gate}
                for stage in plan.stages
            ],
            total=len(plan),
            fingerprint=plan.fingerprint(),
        )
        yield self._completed("build_plan", started)

        yield ev.StageStarted(command=self.name, stage_id="load_checkpoint", label="Load checkpoint")
        started = time.perf_counter()
        store = ProgressStore(self.store_path, fingerprint=plan.fingerprint())
        present = store.exists
        checkpoint = store.load()
        if checkpoint >= len(plan) > 0:
            yield ev.Warning(
                command=self.name,
                code="checkpoint_out_of_range",
                message=f"Checkpoint {checkpoint} is past the end of a {len(plan)}-entry plan.",
                hint=f"Run `chupgrade reset {self.name}` if the plan changed.",
            )
        yield ev.CheckpointLoaded(command=self.name, path=store.path, index=checkpoint, present=present)
        yield self._completed("load_checkpoint", started)

        yield ev.StageStarted(command=self.name, stage_id="execute_plan", label="Execute plan")
        started = time.perf_counter()
        executor = StageExecutor(
            store,
            sites=farm.sites,
            actions=self.actions,
            gates=self.gates,
            fail_fast=self.fail_fast,
            command=self.name,
        )
        report = yield from executor.iter_run(plan, checkpoint, self.invoker_factory(farm))
        yield self._completed("execute_plan", started, "success" if not report.failed else "partial")

        yield ev.StageStarted(command=self.name, stage_id="clear_checkpoint", label="Clear checkpoint")
        started = time.perf_counter()
        store.clear()
        yield ev.CheckpointCleared(command=self.name, path=store.path)
        yield self._completed("clear_checkpoint", started)
        return report

    def _completed(self, stage_id: str, started: float, status: str = "success") -> ev.StageCompleted:
        return ev.StageCompleted(
            command=self.name,
            stage_id=stage_id,
            duration_ms=(time.perf_counter() - started) * 1000,
            status=status,
        )
