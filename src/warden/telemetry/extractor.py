"""Schema-agnostic value extraction from telemetry documents.

Telemetry sources change shape without notice: the same value may arrive
as ``current_exp`` at the top level one week and as ``data.player.cur_xp``
the next. Instead of binding to a schema, values are located by
case-insensitive key patterns over the decoded document.

The document is treated as a tagged variant: object (``dict``), array
(``list``), string, number, bool or null. ``_Finder`` visits it with the
following rule at every object:

1. Scan *all* keys of the object first. A matching key whose value is a
   qualifying scalar wins immediately. A matching key whose value is an
   object may, when penetration is enabled, be searched one level deep
   for a generic locator key (``url``, ``src``, ``image``, ...).
2. Only if nothing qualified, descend depth-first into each nested
   object/array in key order and apply the same rule there.

A shallow match therefore always beats a deeper one. Arrays are lists of
candidates tried in order. Recursion is bounded by ``MAX_DEPTH``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from warden.core.logging import get_logger

_logger = get_logger("telemetry.extractor")

JsonValue: TypeAlias = "dict[str, JsonValue] | list[JsonValue] | str | int | float | bool | None"
Scalar: TypeAlias = str | int | float
PatternLike: TypeAlias = "str | re.Pattern[str]"

MAX_DEPTH = 64

LOCATOR_KEYS = re.compile(r"^(url|src|href|icon|img|image|link|pic|source)$", re.IGNORECASE)


def _compile(patterns: PatternLike | Sequence[PatternLike]) -> tuple[re.Pattern[str], ...]:
    if isinstance(patterns, (str, re.Pattern)):
        patterns = [patterns]
    return tuple(
        p if isinstance(p, re.Pattern) else re.compile(p, re.IGNORECASE)
        for p in patterns
    )


class _Finder:
    """Visitor implementing the shallow-first search over one document."""

    def __init__(
        self,
        patterns: tuple[re.Pattern[str], ...],
        *,
        penetrate: bool,
        min_length: int,
        accept_numbers: bool,
        max_depth: int,
    ) -> None:
        self._patterns = patterns
        self._penetrate = penetrate
        self._min_length = min_length
        self._accept_numbers = accept_numbers
        self._max_depth = max_depth

    def find(self, node: Any) -> Scalar | None:
        return self._visit(node, 0)

    # --- variant dispatch -------------------------------------------------

    def _visit(self, node: Any, depth: int) -> Scalar | None:
        if depth > self._max_depth:
            return None
        if isinstance(node, dict):
            return self._visit_object(node, depth)
        if isinstance(node, list):
            return self._visit_array(node, depth)
        # Scalars carry no keys
        return None

    def _visit_array(self, items: list[Any], depth: int) -> Scalar | None:
        for item in items:
            found = self._visit(item, depth + 1)
            if found is not None:
                return found
        return None

    def _visit_object(self, obj: dict[Any, Any], depth: int) -> Scalar | None:
        # Phase 1: every key at this level before any descent
        for key, value in obj.items():
            if not self._matches(key):
                continue
            if self._qualifies(value):
                return value
            if self._penetrate and isinstance(value, (dict, list)):
                inner = self._locator_in(value)
                if inner is not None:
                    return inner

        # Phase 2: depth-first into nested containers
        for value in obj.values():
            if isinstance(value, (dict, list)):
                found = self._visit(value, depth + 1)
                if found is not None:
                    return found
        return None

    # --- predicates -------------------------------------------------------

    def _matches(self, key: Any) -> bool:
        name = key if isinstance(key, str) else str(key)
        return any(p.search(name) for p in self._patterns)

    def _qualifies(self, value: Any) -> bool:
        if isinstance(value, str):
            return len(value.strip()) >= self._min_length
        if isinstance(value, bool) or not self._accept_numbers:
            return False
        if isinstance(value, (int, float)):
            return math.isfinite(value)
        return False

    def _locator_in(self, container: dict[Any, Any] | list[Any]) -> str | None:
        """Look for a generic locator key directly inside one matched object."""
        candidates = container if isinstance(container, list) else [container]
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            for key, value in candidate.items():
                if (
                    isinstance(value, str)
                    and len(value.strip()) >= self._min_length
                    and LOCATOR_KEYS.search(str(key))
                ):
                    return value
        return None


def find_value(
    document: Any,
    patterns: PatternLike | Sequence[PatternLike],
    *,
    penetrate: bool = False,
    min_length: int = 1,
    accept_numbers: bool = True,
    max_depth: int = MAX_DEPTH,
) -> Scalar | None:
    """Find the best-effort value for a key pattern anywhere in ``document``.

    Args:
        document: Decoded JSON document of unknown shape.
        patterns: One or more key patterns; strings are compiled
            case-insensitively.
        penetrate: When a matched key holds an object, look one level
            inside it for a generic locator key.
        min_length: Minimum length of a string value to qualify.
        accept_numbers: Whether numeric values qualify.
        max_depth: Nesting depth beyond which the search gives up.

    Returns:
        The first qualifying value, or None when nothing matched.
    """
    finder = _Finder(
        _compile(patterns),
        penetrate=penetrate,
        min_length=min_length,
        accept_numbers=accept_numbers,
        max_depth=max_depth,
    )
    try:
        return finder.find(document)
    except (TypeError, ValueError, RecursionError) as e:
        _logger.debug("extractor.malformed_document", error=str(e))
        return None


# ─── Scalar coercion ──────────────────────────────────────────────────


def parse_metric(value: Any) -> int | None:
    """Coerce a telemetry counter to an int.

    Strings lose every non-digit (``"1,200 XP"`` becomes ``1200``).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    digits = re.sub(r"[^0-9]", "", str(value))
    if not digits:
        return None
    try:
        return int(digits)
    except ValueError:
        # past the interpreter's int digit limit
        return None


def parse_percent(value: Any) -> float | None:
    """Coerce a percentage such as ``"45.5%"`` to a float."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(str(value).replace("%", "").strip())
    except ValueError:
        return None
    return result if math.isfinite(result) else None


def first_present(document: Any, keys: Iterable[str]) -> Any:
    """Return the value of the first key present with a non-empty value."""
    if not isinstance(document, dict):
        return None
    for key in keys:
        value = document.get(key)
        if value is not None and value != "":
            return value
    return None


# ─── Telemetry shapes ─────────────────────────────────────────────────

LEVEL_PATTERN = re.compile(r"^(level|lvl|current_level)$", re.IGNORECASE)
CURRENT_PATTERN = re.compile(
    r"^(current_exp|curr_exp|cur_exp|currentexp|current_xp|curr_xp|cur_xp|exp|xp)$",
    re.IGNORECASE,
)
START_PATTERN = re.compile(r"^(exp_for_current_level|start_exp|start_point)$", re.IGNORECASE)
TARGET_PATTERN = re.compile(r"^(exp_for_next_level|next_exp|next_level_exp)$", re.IGNORECASE)
NEEDED_PATTERN = re.compile(r"^(exp_needed|needed_exp)$", re.IGNORECASE)
PERCENT_PATTERN = re.compile(r"^(progress_percentage|percent|percentage)$", re.IGNORECASE)
NICKNAME_PATTERN = re.compile(
    r"^(nickname|name|user_name|username|ign|player_name)$", re.IGNORECASE,
)
ETA_PATTERN = re.compile(r"^eta$", re.IGNORECASE)
BANNER_PATTERN = re.compile(r".*(banner|background|cover|wall|header).*", re.IGNORECASE)
AVATAR_PATTERN = re.compile(r".*(avatar|icon|image|pic|photo|profile).*", re.IGNORECASE)

# Strings shorter than this are placeholders ("n/a", "-")
MIN_LOCATOR_LENGTH = 5


@dataclass
class ProgressSnapshot:
    """Normalized progress read for one instance."""

    level: int | None = None
    current: int | None = None
    start: int | None = None
    target: int | None = None
    needed: int | None = None
    percent: float | None = None
    nickname: str | None = None
    eta: str | None = None
    raw: Any = field(default=None, repr=False)


@dataclass
class ProfileSnapshot:
    """Display locators for one target."""

    banner: str | None = None
    avatar: str | None = None
    nickname: str | None = None

    @classmethod
    def from_locator(cls, url: str) -> ProfileSnapshot:
        return cls(banner=url)


def extract_progress(document: Any) -> ProgressSnapshot | None:
    """Build a ProgressSnapshot from a document of unknown shape.

    Returns None when neither a level nor a current counter can be found,
    which callers treat as an unusable body.
    """
    if not isinstance(document, (dict, list)):
        return None
    level = parse_metric(find_value(document, LEVEL_PATTERN))
    current = parse_metric(find_value(document, CURRENT_PATTERN))
    if level is None and current is None:
        return None
    nickname = find_value(
        document, NICKNAME_PATTERN, min_length=MIN_LOCATOR_LENGTH, accept_numbers=False,
    )
    eta = find_value(document, ETA_PATTERN, accept_numbers=False)
    return ProgressSnapshot(
        level=level,
        current=current,
        start=parse_metric(find_value(document, START_PATTERN)),
        target=parse_metric(find_value(document, TARGET_PATTERN)),
        needed=parse_metric(find_value(document, NEEDED_PATTERN)),
        percent=parse_percent(find_value(document, PERCENT_PATTERN)),
        nickname=str(nickname) if nickname is not None else None,
        eta=str(eta) if eta is not None else None,
        raw=document,
    )


def extract_profile(document: Any) -> ProfileSnapshot | None:
    """Build a ProfileSnapshot, or None when no field could be located."""
    if not isinstance(document, (dict, list)):
        return None
    banner = find_value(
        document, BANNER_PATTERN,
        penetrate=True, min_length=MIN_LOCATOR_LENGTH, accept_numbers=False,
    )
    avatar = find_value(
        document, AVATAR_PATTERN,
        penetrate=True, min_length=MIN_LOCATOR_LENGTH, accept_numbers=False,
    )
    nickname = find_value(
        document, NICKNAME_PATTERN, min_length=MIN_LOCATOR_LENGTH, accept_numbers=False,
    )
    if banner is None and avatar is None and nickname is None:
        return None
    return ProfileSnapshot(
        banner=str(banner) if banner is not None else None,
        avatar=str(avatar) if avatar is not None else None,
        nickname=str(nickname) if nickname is not None else None,
    )


__all__ = [
    "JsonValue",
    "LOCATOR_KEYS",
    "MAX_DEPTH",
    "ProfileSnapshot",
    "ProgressSnapshot",
    "extract_profile",
    "extract_progress",
    "find_value",
    "first_present",
    "parse_metric",
    "parse_percent",
]
