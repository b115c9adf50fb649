from __future__ import annotations

from conftest import FakeInvoker
import pytest

from chupgrade.core.actions import (
    LEGACY_MODULES,
    ActionContext,
    is_publisher,
    remove_rest_resource,
    uninstall_legacy_modules,
    upgrade_publishers,
)
from chupgrade.core.errors import RemoteActionFailure
from chupgrade.core.invoker import InvocationResult
from chupgrade.core.plan import Site

SITE = Site("a.example")


def test_uninstall_removes_only_enabled_legacy_modules(fake_invoker: FakeInvoker) -> None:
    fake_invoker.respond(
        "pm:list",
        "a.example",
        InvocationResult(object={"acquia_contenthub": {}, "acquia_contenthub_status": {}}),
    )
    ctx = ActionContext(invoker=fake_invoker, site=SITE)

    message = uninstall_legacy_modules(ctx)

    uninstalls = [args for command, _, args, _ in fake_invoker.calls if command == "pm:uninstall"]
    assert uninstalls == [("acquia_contenthub_status",)]
    assert message == "uninstalled acquia_contenthub_status"
    assert [record.command for record in ctx.calls] == ["pm:list", "pm:uninstall"]
    assert fake_invoker.calls[0][3]["format"] == "json"
    assert "format" not in fake_invoker.calls[1][3]


def test_uninstall_is_a_no_op_without_legacy_modules(fake_invoker: FakeInvoker) -> None:
    fake_invoker.respond("pm:list", "a.example", InvocationResult(object={"acquia_contenthub": {}}))

    message = uninstall_legacy_modules(ActionContext(invoker=fake_invoker, site=SITE))

    assert message == "no legacy modules enabled"
    assert [command for command, *_ in fake_invoker.calls] == ["pm:list"]
    assert "acquia_contenthub" not in LEGACY_MODULES


def test_rest_resource_removal_stops_at_first_failure(fake_invoker: FakeInvoker) -> None:
    fake_invoker.respond("cache:rebuild", "a.example", InvocationResult(error_status=1))
    ctx = ActionContext(invoker=fake_invoker, site=SITE)

    with pytest.raises(RemoteActionFailure, match="cache:rebuild on a.example"):
        remove_rest_resource(ctx)

    assert [record.command for record in ctx.calls] == ["sql:query", "sql:query", "cache:rebuild"]


def test_publisher_upgrade_enables_module_first(fake_invoker: FakeInvoker) -> None:
    upgrade_publishers(ActionContext(invoker=fake_invoker, site=SITE))

    assert fake_invoker.commands_for("a.example") == ["pm:enable", "ach-publisher-upgrade"]
    assert fake_invoker.calls[0][2] == ("acquia_contenthub_publisher",)


@pytest.mark.parametrize(
    ("payload", "expected"),
    [({"publisher": True}, True), ({}, False), (None, False)],
)
def test_is_publisher_is_a_membership_test(fake_invoker: FakeInvoker, payload, expected: bool) -> None:
    fake_invoker.respond("php:eval", "a.example", InvocationResult(object=payload))

    assert is_publisher(ActionContext(invoker=fake_invoker, site=SITE)) is expected


def test_only_the_module_listing_asks_for_json(fake_invoker: FakeInvoker) -> None:
    fake_invoker.respond("pm:list", "a.example", InvocationResult(object={"acquia_contenthub_audit": {}}))
    ctx = ActionContext(invoker=fake_invoker, site=SITE)

    uninstall_legacy_modules(ctx)
    remove_rest_resource(ctx)
    upgrade_publishers(ctx)

    formats = {command: options.get("format") for command, _, _, options in fake_invoker.calls}
    assert formats.pop("pm:list") == "json"
    assert set(formats.values()) == {None}
