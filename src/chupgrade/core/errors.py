from __future__ import annotations


class UpgradeError(RuntimeError):
    error_code = "upgrade_error"


class DiscoveryError(UpgradeError):
    error_code = "discovery_error"


class PersistenceError(UpgradeError):
    error_code = "checkpoint_error"


class StaleCheckpointError(PersistenceError):
    error_code = "stale_checkpoint"


class PlanLookupError(UpgradeError, LookupError):
    error_code = "plan_error"


class RemoteActionFailure(UpgradeError):
    error_code = "remote_error"

    def __init__(self, command: str, site: str | None, error_status: int, message: str = ""):
        self.command = command
        self.site = site
        self.error_status = error_status
        self.message = message
        where = f" on {site}" if site else ""
        detail = f": {message}" if message else ""
        super().__init__(f"{command}{where} failed with status {error_status}{detail}")
