from __future__ import annotations

import sys
from pathlib import Path

import pytest

from chupgrade.config.load import ConfigError, load_config
from chupgrade.core.commands import apply_overrides
from chupgrade.core.events import CheckpointLoaded, CommandStarted
from chupgrade.sources.exec import ExecSource


def test_load_config_defaults_without_file(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert config.inventory.type == "file"
    assert config.inventory.with_ == {"path": "sites.json"}
    assert config.drush.cmd == ["drush"]
    assert config.lift_support is False


def test_load_config_explicit_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Missing config"):
        load_config(tmp_path, Path("other.yaml"))


def test_load_config_rejects_unknown_keys(tmp_path: Path) -> None:
    (tmp_path / "chupgrade.yaml").write_text("version: v1\nretries: 3\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_load_config_rejects_shared_checkpoint_path(tmp_path: Path) -> None:
    (tmp_path / "chupgrade.yaml").write_text(
        "checkpoints:\n  prepare: same.progress\n  upgrade: same.progress\n",
        encoding="utf-8",
    )

    with pytest.raises(ConfigError, match="must differ"):
        load_config(tmp_path)


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    (tmp_path / "chupgrade.yaml").write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="YAML mapping"):
        load_config(tmp_path)


def test_overrides_replace_inventory_and_checkpoint(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    updated = apply_overrides(
        config,
        sites=Path("/srv/sites.json"),
        checkpoint=Path("/var/run/up.progress"),
        command="upgrade",
        lift_support=True,
    )

    assert updated.inventory.with_ == {"path": "/srv/sites.json"}
    assert updated.checkpoints.upgrade == "/var/run/up.progress"
    assert updated.checkpoints.prepare == config.checkpoints.prepare
    assert updated.lift_support is True
    assert config.lift_support is False


def test_exec_source_parses_json_stdout(tmp_path: Path) -> None:
    source = ExecSource(
        tmp_path,
        cmd=[sys.executable, "-c", 'import json; print(json.dumps({"ok": True}))'],
    )
    assert source.fetch() == {"ok": True}


def test_exec_source_rejects_non_list_cmd(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="list of strings"):
        ExecSource(tmp_path, cmd="drush sa --format=json")  # type: ignore[arg-type]


def test_event_to_dict_serializes_paths() -> None:
    event = CommandStarted(
        command="upgrade",
        config_path=Path("project") / "chupgrade.yaml",
    )
    payload = event.to_dict()

    assert payload["config_path"] == str(Path("project") / "chupgrade.yaml")
    assert payload["type"] == "CommandStarted"


def test_checkpoint_event_serializes_path() -> None:
    payload = CheckpointLoaded(command="prepare", path=Path("/tmp/p.progress"), index=4, present=True).to_dict()

    assert payload["path"] == "/tmp/p.progress"
    assert payload["index"] == 4
