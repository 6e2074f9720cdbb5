"""HTTP client for job-control endpoints.

Starting and stopping a remote job is a single ``GET`` against a
configured template. Any 2xx answer is success and its body is a
human-readable confirmation; everything else is an error for the caller
to surface. There is no retry here: the lifecycle controller turns
failures into an ``error`` status and the user decides what to do.
"""

from __future__ import annotations

import httpx

from warden.core.endpoints import resolve_template
from warden.core.errors import NetworkError, RemoteError
from warden.core.logging import get_logger

_logger = get_logger("lifecycle.client")


class JobControlClient:
    """Issues start/stop calls against job-control endpoint templates."""

    def __init__(
        self,
        timeout: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    @staticmethod
    def prepare(template: str, target_id: str) -> str:
        """Resolve a template for a target. Raises ConfigError when invalid."""
        return resolve_template(template, target_id)

    async def invoke(self, url: str, *, action: str = "call") -> str:
        """Call a resolved job-control URL.

        Returns:
            The response body, or a default confirmation when it is empty.

        Raises:
            NetworkError: On timeout or transport failure.
            RemoteError: On a non-2xx status.
        """
        client = await self._get_client()
        _logger.info("job_control.request", action=action, url=url)
        try:
            response = await client.get(url, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out after {self._timeout}s", url=url) from e
        except httpx.RequestError as e:
            raise NetworkError(str(e) or "Failed to connect to server", url=url) from e

        text = response.text
        _logger.info(
            "job_control.response",
            action=action,
            status_code=response.status_code,
            body=text[:200],
        )
        if not response.is_success:
            raise RemoteError(response.status_code, text, url=url)
        return text or f"{action.capitalize()} request accepted"

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


__all__ = ["JobControlClient"]
