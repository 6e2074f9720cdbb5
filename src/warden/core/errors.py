"""Exception hierarchy for Warden.

All Warden-specific exceptions inherit from WardenError, so callers can
catch broadly (WardenError) or narrowly (e.g. RemoteError). The hierarchy
is flat: one class per failure family of a remote call plus configuration
and lookup failures.
"""

from __future__ import annotations


class WardenError(Exception):
    """Base exception for all Warden errors."""


class NetworkError(WardenError):
    """Raised when a remote call times out, is aborted or cannot connect."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class RemoteError(WardenError):
    """Raised when a remote endpoint answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "", url: str | None = None) -> None:
        snippet = body.strip()[:200]
        message = f"API Error: {status_code}"
        if snippet:
            message = f"{message} - {snippet}"
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.url = url


class ParseError(WardenError):
    """Raised when a telemetry body cannot be turned into a usable result.

    Covers both undecodable bodies and decodable documents that carry
    none of the expected fields.
    """


class ConfigError(WardenError):
    """Raised for malformed configuration.

    Examples: an endpoint template that is not a valid URL after
    substitution, or a user without any bot configured.
    """


class InstanceNotFoundError(WardenError):
    """Raised when an instance id is not present in the registry."""

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Instance not found: {instance_id}")
        self.instance_id = instance_id


__all__ = [
    "ConfigError",
    "InstanceNotFoundError",
    "NetworkError",
    "ParseError",
    "RemoteError",
    "WardenError",
]
