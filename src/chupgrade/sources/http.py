from __future__ import annotations

import os
from typing import Any

import httpx


class HttpSource:
    """Fetches sites.json from a farm endpoint.

    A 404 means the farm publishes no sites document and is reported as an
    empty inventory. ``token_env`` names an environment variable holding a
    bearer token.
    """

    def __init__(
        self,
        base_dir: object,
        *,
        url: str,
        headers: dict[str, str] | None = None,
        token_env: str | None = None,
        timeout_s: float | None = 30,
        transport: httpx.BaseTransport | None = None,
        **_: Any,
    ):
        self.url = url
        self.headers = dict(headers or {})
        if token_env:
            token = os.environ.get(token_env)
            if not token:
                raise ValueError(f"Environment variable {token_env} is not set.")
            self.headers.setdefault("Authorization", f"Bearer {token}")
        self.timeout = timeout_s
        self.transport = transport

    def fetch(self) -> Any:
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.get(self.url, headers=self.headers)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        if not response.content.strip():
            return None
        return response.json()
