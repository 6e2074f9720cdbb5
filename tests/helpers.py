"""Shared test helpers for Warden tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from warden.core.models import Instance, InstanceStatus

Handler = Callable[[httpx.Request], httpx.Response]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler: Handler) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    @property
    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


def mock_client(handler: Handler) -> tuple[httpx.AsyncClient, RecordingTransport]:
    """An AsyncClient served by ``handler``, plus its recording transport."""
    transport = RecordingTransport(handler)
    return httpx.AsyncClient(transport=transport), transport


def make_instance(**overrides: Any) -> Instance:
    """Test helper: an active instance for target ``123`` unless overridden."""
    fields: dict[str, Any] = {
        "bot_name": "alpha",
        "target_id": "123",
        "status": InstanceStatus.ACTIVE,
        "started_at": "10:00:00",
        "started_timestamp": 1_000,
    }
    fields.update(overrides)
    return Instance(**fields)
