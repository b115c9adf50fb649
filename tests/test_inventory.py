from __future__ import annotations

import json
import sys
from pathlib import Path

import httpx
import pytest

from chupgrade.config.model import Inventory
from chupgrade.core.errors import DiscoveryError
from chupgrade.core.plan import Site
from chupgrade.inventory import SiteInventory, resolve


def test_resolve_derives_alias_sites_and_docroot(farm_document: dict) -> None:
    farm = resolve(farm_document)

    assert farm.alias == "@acme.01live"
    assert farm.sites == (Site("a.example"), Site("b.example"))
    assert farm.docroot == "/var/www/html/acme.01live/docroot"


def test_resolve_keeps_document_order() -> None:
    document = {
        "cloud": {"site": "acme", "env": "01test"},
        "sites": {"z.example": {}, "m.example": {}, "a.example": {}},
    }

    assert [site.uri for site in resolve(document).sites] == ["z.example", "m.example", "a.example"]


def test_resolve_honours_docroot_override(farm_document: dict) -> None:
    assert resolve(farm_document, docroot="/srv/docroot").docroot == "/srv/docroot"


@pytest.mark.parametrize("document", [None, {}, []])
def test_resolve_empty_document_is_discovery_error(document) -> None:
    with pytest.raises(DiscoveryError, match="no sites"):
        resolve(document)


def test_resolve_rejects_document_without_cloud_section() -> None:
    with pytest.raises(DiscoveryError, match="Invalid farm configuration"):
        resolve({"sites": {"a.example": {}}})


def test_resolve_rejects_blank_environment() -> None:
    with pytest.raises(DiscoveryError, match="/cloud/env"):
        resolve({"cloud": {"site": "acme", "env": ""}, "sites": {"a.example": {}}})


def test_file_inventory_reads_sites_json(sites_file: Path) -> None:
    inventory = SiteInventory(Inventory(with_={"path": sites_file.name}), base_dir=sites_file.parent)

    farm = inventory.resolve()

    assert farm.alias == "@acme.01live"
    assert len(farm.sites) == 2


def test_missing_sites_file_is_discovery_error(tmp_path: Path) -> None:
    inventory = SiteInventory(Inventory(with_={"path": "absent.json"}), base_dir=tmp_path)

    with pytest.raises(DiscoveryError, match="no sites"):
        inventory.resolve()


def test_unparseable_sites_file_is_discovery_error(tmp_path: Path) -> None:
    (tmp_path / "sites.json").write_text("{not json", encoding="utf-8")
    inventory = SiteInventory(Inventory(), base_dir=tmp_path)

    with pytest.raises(DiscoveryError, match="Failed to read farm configuration"):
        inventory.resolve()


def test_exec_inventory_reads_command_output(tmp_path: Path, farm_document: dict) -> None:
    script = "import json, sys; print(json.dumps(json.loads(sys.argv[1])))"
    cmd = [sys.executable, "-c", script, json.dumps(farm_document)]
    inventory = SiteInventory(
        Inventory(type="exec", with_={"cmd": cmd}),
        base_dir=tmp_path,
    )

    assert [site.uri for site in inventory.resolve().sites] == ["a.example", "b.example"]


def test_unknown_inventory_type_is_discovery_error(tmp_path: Path) -> None:
    inventory = SiteInventory(Inventory(type="ldap", with_={}), base_dir=tmp_path)

    with pytest.raises(DiscoveryError, match="Unknown inventory source type: ldap"):
        inventory.resolve()


def _http_inventory(tmp_path: Path, handler, **options) -> SiteInventory:
    options = {"url": "https://farm.example/sites.json", "transport": httpx.MockTransport(handler), **options}
    return SiteInventory(Inventory(type="http", with_=options), base_dir=tmp_path)


def test_http_inventory_sends_bearer_token(tmp_path: Path, farm_document: dict, monkeypatch) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=farm_document)

    monkeypatch.setenv("FARM_TOKEN", "s3cret")
    farm = _http_inventory(tmp_path, handler, token_env="FARM_TOKEN").resolve()

    assert farm.alias == "@acme.01live"
    assert seen[0].headers["Authorization"] == "Bearer s3cret"


def test_http_inventory_not_found_means_no_sites(tmp_path: Path) -> None:
    inventory = _http_inventory(tmp_path, lambda request: httpx.Response(404))

    with pytest.raises(DiscoveryError, match="no sites"):
        inventory.resolve()


def test_http_inventory_server_error_is_discovery_error(tmp_path: Path) -> None:
    inventory = _http_inventory(tmp_path, lambda request: httpx.Response(503))

    with pytest.raises(DiscoveryError, match=r"Failed to read farm configuration \(http\)"):
        inventory.resolve()


def test_http_inventory_missing_token_variable(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("FARM_TOKEN", raising=False)
    inventory = _http_inventory(tmp_path, lambda request: httpx.Response(200), token_env="FARM_TOKEN")

    with pytest.raises(DiscoveryError, match="FARM_TOKEN is not set"):
        inventory.resolve()
