from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Mapping, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from chupgrade.core.invoker import InvocationResult  # noqa: E402
from chupgrade.core.plan import Site  # noqa: E402


class Crash(Exception):
    """Stands in for the process being killed mid-run."""


class FakeInvoker:
    def __init__(self, alias: str = "@acme.01live"):
        self.alias = alias
        self.calls: list[tuple[str, str | None, tuple[str, ...], dict[str, Any]]] = []
        self.responses: dict[tuple[str, str | None], InvocationResult] = {}
        self.crash_on: tuple[str, str | None] | None = None

    def respond(self, command: str, site: str | None, result: InvocationResult) -> None:
        self.responses[(command, site)] = result

    def invoke(
        self,
        command: str,
        site: Site | None,
        arguments: Sequence[str] = (),
        options: Mapping[str, Any] | None = None,
    ) -> InvocationResult:
        uri = site.uri if site else None
        if self.crash_on == (command, uri):
            raise Crash(f"killed during {command} on {uri}")
        self.calls.append((command, uri, tuple(arguments), dict(options or {})))
        return self.responses.get((command, uri)) or self.responses.get((command, None)) or InvocationResult()

    def commands_for(self, uri: str) -> list[str]:
        return [command for command, site, _, _ in self.calls if site == uri]


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def farm_document() -> dict[str, Any]:
    return {
        "cloud": {"site": "acme", "env": "01live"},
        "sites": {
            "a.example": {"name": "a", "flags": {}},
            "b.example": {"name": "b", "flags": {}},
        },
    }


@pytest.fixture
def sites_file(tmp_path: Path, farm_document: dict[str, Any]) -> Path:
    path = tmp_path / "sites.json"
    path.write_text(json.dumps(farm_document), encoding="utf-8")
    return path


@pytest.fixture
def project_dir(tmp_path: Path, sites_file: Path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    (project / "state").mkdir()
    (project / "chupgrade.yaml").write_text(
        f"""
version: v1

inventory:
  type: file
  with:
    path: {sites_file}

drush:
  cmd: [drush]
  timeout_s: 30

checkpoints:
  prepare: state/prepare.progress
  upgrade: state/upgrade.progress

lift_support: false
fail_fast: false
""".strip()
        + "\n",
        encoding="utf-8",
    )
    return project
