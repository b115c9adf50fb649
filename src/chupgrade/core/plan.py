from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

from chupgrade.core.errors import PlanLookupError


@dataclass(frozen=True)
class Site:
    uri: str

    def __str__(self) -> str:
        return self.uri


@dataclass(frozen=True)
class StageDefinition:
    name: str
    per_site: bool
    label: str = ""
    gate: str | None = None

    @property
    def title(self) -> str:
        return self.label or self.name


@dataclass(frozen=True)
class PlanEntry:
    index: int
    stage_name: str
    site: Site | None = None

    @property
    def key(self) -> str:
        return self.stage_name if self.site is None else f"{self.stage_name}|{self.site.uri}"


class Plan:
    """Flattened, ordered (stage, site) executions.

    The index of an entry is its position in the sequence and is the only
    identity persisted by a checkpoint.
    """

    def __init__(self, stages: Sequence[StageDefinition], entries: Sequence[PlanEntry]):
        self.stages = tuple(stages)
        self.entries = tuple(entries)
        self._stages_by_name = {stage.name: stage for stage in self.stages}
        self._index = {(entry.stage_name, entry.site): entry.index for entry in self.entries}

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[PlanEntry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> PlanEntry:
        return self.entries[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Plan):
            return NotImplemented
        return self.stages == other.stages and self.entries == other.entries

    def __hash__(self) -> int:
        return hash((self.stages, self.entries))

    def stage(self, name: str) -> StageDefinition:
        try:
            return self._stages_by_name[name]
        except KeyError:
            raise PlanLookupError(f"Unknown stage: {name}") from None

    def index_of(self, stage_name: str, site: Site | None = None) -> int:
        try:
            return self._index[(stage_name, site)]
        except KeyError:
            where = f" for site {site.uri}" if site is not None else " without a site"
            raise PlanLookupError(f"Stage {stage_name!r}{where} is not part of the plan.") from None

    def fingerprint(self) -> str:
        digest = hashlib.sha256()
        for entry in self.entries:
            digest.update(entry.key.encode("utf-8"))
            digest.update(b"\n")
        return digest.hexdigest()


class PlanBuilder:
    def build(self, stage_defs: Iterable[StageDefinition], sites: Iterable[Site]) -> Plan:
        stages = tuple(stage_defs)
        site_list = tuple(sites)
        _check_unique(stages)
        entries: list[PlanEntry] = []
        for stage in stages:
            if stage.per_site:
                for site in site_list:
                    entries.append(PlanEntry(index=len(entries), stage_name=stage.name, site=site))
            else:
                entries.append(PlanEntry(index=len(entries), stage_name=stage.name))
        return Plan(stages, entries)


def splice(
    stage_defs: Sequence[StageDefinition],
    extra: StageDefinition,
    position: int,
) -> tuple[StageDefinition, ...]:
    if position < 0 or position > len(stage_defs):
        raise ValueError(f"Cannot insert stage {extra.name!r} at position {position}.")
    stages = list(stage_defs)
    stages.insert(position, extra)
    return tuple(stages)


def _check_unique(stages: Sequence[StageDefinition]) -> None:
    seen: set[str] = set()
    duplicates: set[str] = set()
    for stage in stages:
        if stage.name in seen:
            duplicates.add(stage.name)
        seen.add(stage.name)
    if duplicates:
        raise ValueError(f"Duplicate stage names: {', '.join(sorted(duplicates))}")
