"""Endpoint templates.

A template is a URL pattern containing a placeholder for the target id,
e.g. ``https://bot.example/add?uid={target_uid}``. Templates are resolved
at call time; a template that does not produce a valid absolute URL is a
``ConfigError`` and must abort the caller before any request is made.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from warden.core.errors import ConfigError

# Placeholder spellings accepted in templates. All are substituted.
PLACEHOLDERS = ("{target_uid}", "{uid}", "{id}")

_DIRECT_IMAGE = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)$", re.IGNORECASE)


def resolve_template(template: str, target_id: str) -> str:
    """Substitute ``target_id`` into ``template`` and validate the result.

    The template is trimmed and ``https://`` is prepended when it carries
    no ``http`` scheme.

    Raises:
        ConfigError: If the template is empty or the resolved URL has no
            host.
    """
    url = (template or "").strip()
    if not url:
        raise ConfigError("Invalid API URL Configuration: empty template")
    if not url.startswith("http"):
        url = f"https://{url}"
    for placeholder in PLACEHOLDERS:
        url = url.replace(placeholder, target_id)

    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise ConfigError(f"Invalid API URL Configuration: {e}") from e
    if parts.scheme not in ("http", "https") or not parts.hostname or " " in url:
        raise ConfigError(f"Invalid API URL Configuration: {url}")
    return url


def is_direct_image(url: str) -> bool:
    """Whether ``url`` already points at an image resource by file extension."""
    return bool(_DIRECT_IMAGE.search(urlsplit(url).path))


def with_cache_buster(url: str, stamp: int) -> str:
    """Append a ``_t`` query parameter so caches never answer the request."""
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}_t={stamp}"


__all__ = ["PLACEHOLDERS", "is_direct_image", "resolve_template", "with_cache_buster"]
