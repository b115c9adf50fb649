from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from chupgrade.core.errors import RemoteActionFailure
from chupgrade.core.invoker import InvocationResult, OptionValue, RemoteActionInvoker
from chupgrade.core.plan import Site

CONTENT_HUB_PACKAGE = "Acquia Content Hub"

LEGACY_MODULES = (
    "acquia_contenthub_audit",
    "acquia_contenthub_status",
    "acquia_contenthub_diagnostic",
)

CONTENT_HUB_SCHEMA_VERSION = "8200"

PRINT_WEBHOOKS_SNIPPET = (
    '$c = \\Drupal::getContainer()->get("acquia_contenthub.acquia_contenthub_subscription"); '
    "print_r($c->getSettings()->getWebhooks());"
)

PURGE_SUBSCRIPTION_SNIPPET = (
    '$c = \\Drupal::service("acquia_contenthub.client_manager"); '
    '$response = $c->createRequest("purge");'
)

REMOVE_REST_CONFIG_QUERY = 'DELETE FROM config WHERE name = "rest.resource.contenthub_filter";'
REMOVE_REST_ROUTES_QUERY = 'DELETE FROM router WHERE name LIKE "rest.contenthub_filter%";'

SET_SCHEMA_SNIPPET = (
    f'drupal_set_installed_schema_version("acquia_contenthub", "{CONTENT_HUB_SCHEMA_VERSION}");'
)

# Prints {"publisher": true} only when the site has exported entities.
PUBLISHER_CHECK_SNIPPET = (
    "$e = \\Drupal::database()->query(\"SELECT count(*) AS export FROM "
    "acquia_contenthub_entities_tracking WHERE status_export IS NOT NULL\")->fetchAssoc(); "
    "print json_encode(($e['export'] ?? 0) ? ['publisher' => TRUE] : new \\stdClass());"
)


@dataclass(frozen=True)
class CommandRecord:
    command: str
    arguments: tuple[str, ...]
    result: InvocationResult


@dataclass
class ActionContext:
    """Remote calls issued on behalf of one plan entry."""

    invoker: RemoteActionInvoker
    site: Site
    calls: list[CommandRecord] = field(default_factory=list)

    def call(
        self,
        command: str,
        arguments: Sequence[str] = (),
        options: Mapping[str, OptionValue] | None = None,
        *,
        check: bool = True,
    ) -> InvocationResult:
        result = self.invoker.invoke(command, self.site, arguments, options)
        self.calls.append(CommandRecord(command=command, arguments=tuple(arguments), result=result))
        if check and not result.ok:
            raise RemoteActionFailure(
                command,
                self.site.uri,
                result.error_status,
                result.error_output or result.output,
            )
        return result


Action = Callable[[ActionContext], "str | None"]
Gate = Callable[[ActionContext], bool]


def uninstall_legacy_modules(ctx: ActionContext) -> str | None:
    listing = ctx.call(
        "pm:list",
        options={"status": "enabled", "package": CONTENT_HUB_PACKAGE, "format": "json"},
    )
    removed = [name for name in LEGACY_MODULES if listing.has(name)]
    for module_name in removed:
        ctx.call("pm:uninstall", [module_name], {"yes": True})
    if not removed:
        return "no legacy modules enabled"
    return f"uninstalled {', '.join(removed)}"


def install_depcalc(ctx: ActionContext) -> str | None:
    ctx.call("pm:enable", ["depcalc"], {"yes": True})
    return "installed depcalc"


def print_webhooks(ctx: ActionContext) -> str | None:
    result = ctx.call("php:eval", [PRINT_WEBHOOKS_SNIPPET])
    return result.output or None


def purge_subscription(ctx: ActionContext) -> str | None:
    ctx.call("php:eval", [PURGE_SUBSCRIPTION_SNIPPET])
    return "subscription purged"


def remove_rest_resource(ctx: ActionContext) -> str | None:
    ctx.call("sql:query", [REMOVE_REST_CONFIG_QUERY])
    ctx.call("sql:query", [REMOVE_REST_ROUTES_QUERY])
    ctx.call("cache:rebuild")
    ctx.call("php:eval", [SET_SCHEMA_SNIPPET])
    return f"schema set to {CONTENT_HUB_SCHEMA_VERSION}"


def update_databases(ctx: ActionContext) -> str | None:
    ctx.call("updatedb", options={"yes": True})
    return None


def install_lift_support(ctx: ActionContext) -> str | None:
    ctx.call("pm:enable", ["acquia_lift_publisher"], {"yes": True})
    return "installed acquia_lift_publisher"


def upgrade_publishers(ctx: ActionContext) -> str | None:
    ctx.call("pm:enable", ["acquia_contenthub_publisher"], {"yes": True})
    ctx.call("ach-publisher-upgrade")
    return None


def upgrade_subscribers(ctx: ActionContext) -> str | None:
    ctx.call("ach-subscriber-upgrade")
    return None


def is_publisher(ctx: ActionContext) -> bool:
    result = ctx.call("php:eval", [PUBLISHER_CHECK_SNIPPET])
    return result.has("publisher")


ACTIONS: dict[str, Action] = {
    "uninstall_legacy_modules": uninstall_legacy_modules,
    "install_depcalc": install_depcalc,
    "print_webhooks": print_webhooks,
    "purge_subscription": purge_subscription,
    "remove_rest_resource": remove_rest_resource,
    "update_databases": update_databases,
    "install_lift_support": install_lift_support,
    "upgrade_publishers": upgrade_publishers,
    "upgrade_subscribers": upgrade_subscribers,
}

GATES: dict[str, Gate] = {
    "publisher": is_publisher,
}
