"""Resilient telemetry fetching over a chain of access paths.

Telemetry endpoints are third-party and often unreachable from where the
client runs. Each read therefore walks an ordered list of access paths
(direct, then public indirection services) and keeps the first one that
answers with a usable body. Each attempt is cache-busted and hard-bounded
by a timeout that aborts the transfer.

Failures inside the chain never escape: a read that exhausts every path
returns ``None`` ("no data") and callers keep their last known values.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar
from urllib.parse import quote

import httpx

from warden.core.config import TelemetryConfig
from warden.core.endpoints import is_direct_image, resolve_template, with_cache_buster
from warden.core.errors import ConfigError, NetworkError, ParseError, RemoteError
from warden.core.logging import get_logger
from warden.telemetry.extractor import (
    ProfileSnapshot,
    ProgressSnapshot,
    extract_profile,
    extract_progress,
)
from warden.utils.time import now_ms

_logger = get_logger("telemetry.fetch")

T = TypeVar("T")

AccessPath = Callable[[str], str]


def _direct(url: str) -> str:
    return url


def _corsproxy(url: str) -> str:
    return f"https://corsproxy.io/?{quote(url, safe='')}"


def _allorigins(url: str) -> str:
    return f"https://api.allorigins.win/raw?url={quote(url, safe='')}"


def _thingproxy(url: str) -> str:
    return f"https://thingproxy.freeboard.io/fetch/{url}"


# Known transforms, addressable by name from configuration
ACCESS_PATHS: dict[str, AccessPath] = {
    "direct": _direct,
    "corsproxy": _corsproxy,
    "allorigins": _allorigins,
    "thingproxy": _thingproxy,
}

_REQUEST_HEADERS = {
    "Cache-Control": "no-cache, no-store",
    "Pragma": "no-cache",
    "Accept": "application/json, text/plain, */*",
}


class TelemetryKind(str, Enum):
    """What a telemetry read is for."""

    PROGRESS = "progress"
    PROFILE = "profile"


@dataclass
class FetchAttempt:
    """Outcome of one access-path attempt."""

    path: str
    url: str
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class FetchReport(Generic[T]):
    """Everything that happened during one read of the chain."""

    kind: TelemetryKind
    target_id: str
    result: T | None = None
    attempts: list[FetchAttempt] = field(default_factory=list)
    shortcut: bool = False

    @property
    def succeeded_via(self) -> str | None:
        for attempt in self.attempts:
            if attempt.succeeded:
                return attempt.path
        return "shortcut" if self.shortcut else None


def parse_progress_body(text: str) -> ProgressSnapshot:
    """Parse a progress body or raise ParseError."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"progress body is not JSON: {e.msg}") from e
    except (ValueError, RecursionError) as e:
        raise ParseError(f"progress body is not usable JSON: {type(e).__name__}") from e
    try:
        snapshot = extract_progress(document)
    except RecursionError as e:
        raise ParseError("progress document is nested too deeply") from e
    if snapshot is None:
        raise ParseError("progress document has no level or counter")
    return snapshot


def parse_profile_body(text: str) -> ProfileSnapshot:
    """Parse a profile body (JSON or a bare locator) or raise ParseError."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError:
        stripped = text.strip()
        if stripped.startswith("http"):
            return ProfileSnapshot.from_locator(stripped)
        raise ParseError("profile body is neither JSON nor a locator") from None
    except (ValueError, RecursionError) as e:
        raise ParseError(f"profile body is not usable JSON: {type(e).__name__}") from e
    try:
        snapshot = extract_profile(document)
    except RecursionError as e:
        raise ParseError("profile document is nested too deeply") from e
    if snapshot is None:
        raise ParseError("profile document has no banner, avatar or nickname")
    return snapshot


class TelemetryFetcher:
    """Reads progress and profile telemetry through the access-path chain.

    Args:
        config: Telemetry configuration (templates, paths, timeouts).
        client: Optional shared httpx client; one is created lazily
            otherwise and closed by ``close()``.
        access_paths: Registry of named transforms. Defaults to
            ``ACCESS_PATHS``; tests inject their own.
        clock: Source of the cache-busting stamp.
    """

    def __init__(
        self,
        config: TelemetryConfig,
        client: httpx.AsyncClient | None = None,
        access_paths: Mapping[str, AccessPath] | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._registry = dict(access_paths or ACCESS_PATHS)
        self._clock = clock
        self._chains = {
            TelemetryKind.PROGRESS: self._build_chain(config.access_paths.progress),
            TelemetryKind.PROFILE: self._build_chain(config.access_paths.profile),
        }

    def _build_chain(self, names: list[str]) -> list[tuple[str, AccessPath]]:
        unknown = [n for n in names if n not in self._registry]
        if unknown:
            raise ConfigError(f"Unknown telemetry access path(s): {', '.join(unknown)}")
        return [(name, self._registry[name]) for name in names]

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=_REQUEST_HEADERS,
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    # ─── Public API ────────────────────────────────────────────────

    async def fetch_progress(self, target_id: str) -> ProgressSnapshot | None:
        report = await self.read(TelemetryKind.PROGRESS, target_id)
        return report.result

    async def fetch_profile(self, target_id: str) -> ProfileSnapshot | None:
        report = await self.read(TelemetryKind.PROFILE, target_id)
        return report.result

    async def read(self, kind: TelemetryKind, target_id: str) -> FetchReport[Any]:
        """Walk the chain for ``kind`` and report every attempt.

        Never raises for remote or parse failures; ``report.result`` is
        None when no path produced a usable body.
        """
        report: FetchReport[Any] = FetchReport(kind=kind, target_id=target_id)
        template = (
            self._config.progress_url if kind is TelemetryKind.PROGRESS
            else self._config.profile_url
        )
        try:
            base_url = resolve_template(template, target_id)
        except ConfigError as e:
            _logger.warning("telemetry.bad_template", kind=kind.value, error=str(e))
            return report

        if kind is TelemetryKind.PROFILE and is_direct_image(base_url):
            report.result = ProfileSnapshot.from_locator(base_url)
            report.shortcut = True
            return report

        if kind is TelemetryKind.PROGRESS:
            parse: Callable[[str], Any] = parse_progress_body
            timeout = self._config.progress_timeout_seconds
        else:
            parse = parse_profile_body
            timeout = self._config.profile_timeout_seconds

        for name, transform in self._chains[kind]:
            url = with_cache_buster(transform(base_url), self._clock())
            attempt = FetchAttempt(path=name, url=url)
            report.attempts.append(attempt)
            try:
                report.result = await self._attempt(url, timeout, parse)
            except (NetworkError, RemoteError, ParseError) as e:
                attempt.error = str(e) or type(e).__name__
                _logger.debug(
                    "telemetry.attempt_failed",
                    kind=kind.value,
                    path=name,
                    error_type=type(e).__name__,
                    error=attempt.error,
                )
                continue
            _logger.debug("telemetry.attempt_succeeded", kind=kind.value, path=name)
            return report

        _logger.info(
            "telemetry.chain_exhausted",
            kind=kind.value,
            target_id=target_id,
            attempts=len(report.attempts),
        )
        return report

    async def _attempt(self, url: str, timeout: float, parse: Callable[[str], T]) -> T:
        """One bounded GET plus parse.

        Raises:
            NetworkError: On timeout (transfer aborted) or transport failure.
            RemoteError: On a non-2xx status.
            ParseError: When the body is unusable.
        """
        client = await self._get_client()
        try:
            response = await asyncio.wait_for(
                client.get(url, headers=_REQUEST_HEADERS, timeout=timeout),
                timeout=timeout,
            )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise NetworkError(f"timed out after {timeout}s", url=url) from e
        except httpx.RequestError as e:
            raise NetworkError(str(e) or type(e).__name__, url=url) from e

        if not response.is_success:
            raise RemoteError(response.status_code, response.text, url=url)
        return parse(response.text)

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


__all__ = [
    "ACCESS_PATHS",
    "AccessPath",
    "FetchAttempt",
    "FetchReport",
    "TelemetryFetcher",
    "TelemetryKind",
    "parse_profile_body",
    "parse_progress_body",
]
