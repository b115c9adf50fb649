from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from chupgrade.config.model import Inventory
from chupgrade.core.errors import DiscoveryError
from chupgrade.core.plan import Site
from chupgrade.plugins.registry import load_source

# Shape of the Site Factory sites.json document this tool depends on.
FARM_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["cloud", "sites"],
    "properties": {
        "cloud": {
            "type": "object",
            "required": ["site", "env"],
            "properties": {
                "site": {"type": "string", "minLength": 1},
                "env": {"type": "string", "minLength": 1},
            },
        },
        "sites": {"type": "object"},
    },
}

_validator = Draft202012Validator(FARM_SCHEMA)


@dataclass(frozen=True)
class FarmConfig:
    alias: str
    sites: tuple[Site, ...]
    docroot: str | None = None


def resolve(document: Any, *, docroot: str | None = None) -> FarmConfig:
    if not document:
        raise DiscoveryError("There are no sites found in this Site Factory farm.")
    errors = sorted(_validator.iter_errors(document), key=lambda err: list(err.path))
    if errors:
        first = errors[0]
        path = "/" + "/".join(str(p) for p in first.path) if first.path else "/"
        raise DiscoveryError(f"Invalid farm configuration at {path}: {first.message}")
    sites = tuple(Site(uri=str(key)) for key in document["sites"])
    if not sites:
        raise DiscoveryError("There are no sites found in this Site Factory farm.")
    account = document["cloud"]["site"]
    environment = document["cloud"]["env"]
    return FarmConfig(
        alias=f"@{account}.{environment}",
        sites=sites,
        docroot=docroot or f"/var/www/html/{account}.{environment}/docroot",
    )


class SiteInventory:
    """Resolves the farm sites and drush alias from a configured source."""

    def __init__(self, config: Inventory, *, base_dir: Path, docroot: str | None = None):
        self.config = config
        self.base_dir = base_dir
        self.docroot = docroot

    def fetch(self) -> Any:
        try:
            source_cls = load_source(self.config.type)
            instance = source_cls(self.base_dir, **self.config.with_)
            return instance.fetch()
        except DiscoveryError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise DiscoveryError(
                f"Failed to read farm configuration ({self.config.type}): {exc}"
            ) from exc

    def resolve(self) -> FarmConfig:
        return resolve(self.fetch(), docroot=self.docroot)
