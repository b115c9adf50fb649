from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from chupgrade.core.plan import Site

OptionValue = str | bool

TIMEOUT_STATUS = 124
NOT_EXECUTABLE_STATUS = 126
NOT_FOUND_STATUS = 127


@dataclass(frozen=True)
class InvocationResult:
    error_status: int = 0
    object: dict[str, Any] | None = None
    output: str = ""
    error_output: str = ""

    @property
    def ok(self) -> bool:
        return self.error_status == 0

    def has(self, key: str) -> bool:
        return bool(self.object) and key in self.object


@dataclass(frozen=True)
class InvocationRequest:
    alias: str
    command: str
    arguments: tuple[str, ...] = ()
    options: dict[str, OptionValue] = field(default_factory=dict)


class RemoteActionInvoker(Protocol):
    alias: str

    def invoke(
        self,
        command: str,
        site: Site | None,
        arguments: Sequence[str] = (),
        options: Mapping[str, OptionValue] | None = None,
    ) -> InvocationResult:
        ...


class DrushInvoker:
    """Runs drush commands against one site of the farm through its alias.

    Remote failures are reported through ``InvocationResult.error_status``
    and never raised. The timeout bounds every call; ``None`` waits forever.
    """

    def __init__(
        self,
        alias: str,
        *,
        cmd: Sequence[str] = ("drush",),
        timeout_s: float | None = None,
        docroot: str | None = None,
    ):
        if not isinstance(cmd, (list, tuple)) or not cmd or not all(isinstance(item, str) for item in cmd):
            raise ValueError("drush cmd must be a non-empty list of strings")
        self.alias = alias
        self.cmd = list(cmd)
        self.timeout = timeout_s
        self.docroot = docroot

    def request(
        self,
        command: str,
        site: Site | None,
        arguments: Sequence[str] = (),
        options: Mapping[str, OptionValue] | None = None,
    ) -> InvocationRequest:
        merged: dict[str, OptionValue] = {}
        if site is not None:
            merged["uri"] = f"http://{site.uri}"
        if self.docroot:
            merged["root"] = self.docroot
        merged.update(options or {})
        return InvocationRequest(
            alias=self.alias,
            command=command,
            arguments=tuple(arguments),
            options=merged,
        )

    def argv(self, request: InvocationRequest) -> list[str]:
        args = [*self.cmd, request.alias, request.command, *request.arguments]
        for key, value in request.options.items():
            if value is True:
                args.append(f"--{key}")
            elif value is False:
                continue
            else:
                args.append(f"--{key}={value}")
        return args

    def invoke(
        self,
        command: str,
        site: Site | None,
        arguments: Sequence[str] = (),
        options: Mapping[str, OptionValue] | None = None,
    ) -> InvocationResult:
        argv = self.argv(self.request(command, site, arguments, options))
        try:
            result = subprocess.run(  # noqa: S603
                argv,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return InvocationResult(
                error_status=TIMEOUT_STATUS,
                error_output=f"Timed out after {self.timeout}s",
            )
        except FileNotFoundError as exc:
            return InvocationResult(error_status=NOT_FOUND_STATUS, error_output=str(exc))
        except OSError as exc:
            return InvocationResult(error_status=NOT_EXECUTABLE_STATUS, error_output=str(exc))
        return InvocationResult(
            error_status=result.returncode,
            object=_parse_object(result.stdout),
            output=result.stdout.strip(),
            error_output=result.stderr.strip(),
        )


def _parse_object(stdout: str) -> dict[str, Any] | None:
    text = stdout.strip()
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if isinstance(data, dict):
        return data
    return None
