from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class UpgradeEvent:
    ts: float = field(default_factory=time.perf_counter)
    level: str = "INFO"
    command: str = ""
    type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class CommandStarted(UpgradeEvent):
    type: str = "CommandStarted"
    config_path: Path | None = None
    options: dict[str, Any] | None = None


@dataclass(frozen=True)
class CommandCompleted(UpgradeEvent):
    type: str = "CommandCompleted"
    ok: bool = True
    exit_code: int = 0


@dataclass(frozen=True)
class StageStarted(UpgradeEvent):
    type: str = "StageStarted"
    stage_id: str = ""
    label: str = ""


@dataclass(frozen=True)
class StageCompleted(UpgradeEvent):
    type: str = "StageCompleted"
    stage_id: str = ""
    duration_ms: float = 0.0
    status: str = "success"


@dataclass(frozen=True)
class StageFailed(UpgradeEvent):
    type: str = "StageFailed"
    level: str = "ERROR"
    stage_id: str = ""
    duration_ms: float = 0.0
    error_code: str = ""
    message: str = ""
    hint: str | None = None


@dataclass(frozen=True)
class SitesDiscovered(UpgradeEvent):
    type: str = "SitesDiscovered"
    alias: str = ""
    sites: list[str] = field(default_factory=list)
    docroot: str | None = None


@dataclass(frozen=True)
class PlanBuilt(UpgradeEvent):
    type: str = "PlanBuilt"
    stages: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    fingerprint: str = ""


@dataclass(frozen=True)
class CheckpointLoaded(UpgradeEvent):
    type: str = "CheckpointLoaded"
    path: Path | None = None
    index: int = 0
    present: bool = False


@dataclass(frozen=True)
class CheckpointSaved(UpgradeEvent):
    type: str = "CheckpointSaved"
    level: str = "DEBUG"
    path: Path | None = None
    index: int = 0


@dataclass(frozen=True)
class CheckpointCleared(UpgradeEvent):
    type: str = "CheckpointCleared"
    path: Path | None = None


@dataclass(frozen=True)
class EntryStarted(UpgradeEvent):
    type: str = "EntryStarted"
    index: int = 0
    total: int = 0
    stage_id: str = ""
    site: str | None = None


@dataclass(frozen=True)
class GateEvaluated(UpgradeEvent):
    type: str = "GateEvaluated"
    index: int = 0
    gate: str = ""
    site: str | None = None
    passed: bool = False


@dataclass(frozen=True)
class RemoteCommandCompleted(UpgradeEvent):
    type: str = "RemoteCommandCompleted"
    level: str = "DEBUG"
    index: int = 0
    site: str | None = None
    remote_command: str = ""
    arguments: list[str] = field(default_factory=list)
    error_status: int = 0
    output: str = ""


@dataclass(frozen=True)
class EntryCompleted(UpgradeEvent):
    type: str = "EntryCompleted"
    index: int = 0
    total: int = 0
    stage_id: str = ""
    site: str | None = None
    status: str = "succeeded"
    duration_ms: float = 0.0
    message: str | None = None


@dataclass(frozen=True)
class PlanSummary(UpgradeEvent):
    type: str = "PlanSummary"
    entries: list[dict[str, Any]] = field(default_factory=list)
    resume_index: int = 0
    checkpoint_present: bool = False


@dataclass(frozen=True)
class RunSummary(UpgradeEvent):
    type: str = "RunSummary"
    total: int = 0
    succeeded: int = 0
    skipped_checkpoint: int = 0
    skipped_gate: int = 0
    failed: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class Warning(UpgradeEvent):
    type: str = "Warning"
    level: str = "WARNING"
    code: str = ""
    message: str = ""
    hint: str | None = None


def _serialize(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    return value
