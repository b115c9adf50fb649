from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_SITES_PATH = "sites.json"


class Inventory(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    type: str = "file"
    with_: dict[str, Any] = Field(
        default_factory=lambda: {"path": DEFAULT_SITES_PATH},
        alias="with",
    )


class Drush(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cmd: list[str] = Field(default_factory=lambda: ["drush"])
    timeout_s: float | None = 900.0
    docroot: str | None = None


class Checkpoints(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prepare: str = "/tmp/chupgrade-prepare.progress"
    upgrade: str = "/tmp/chupgrade-upgrade.progress"


class Config(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: str = "v1"
    inventory: Inventory = Field(default_factory=Inventory)
    drush: Drush = Field(default_factory=Drush)
    checkpoints: Checkpoints = Field(default_factory=Checkpoints)
    lift_support: bool = False
    fail_fast: bool = False

    @model_validator(mode="after")
    def _validate_config(self) -> "Config":
        if self.version != "v1":
            raise ValueError("Only version v1 is supported.")
        if not self.drush.cmd:
            raise ValueError("drush.cmd must not be empty.")
        if self.checkpoints.prepare == self.checkpoints.upgrade:
            raise ValueError("checkpoints.prepare and checkpoints.upgrade must differ.")
        return self
