"""Rolling-window throughput estimation.

Each instance owns a ``RateEstimator`` holding a deque of
``(timestamp_ms, metric)`` samples from the last ``WINDOW_MS``. The rate
is the slope between the oldest and newest sample in the window, in
units per minute. A negative slope means the counter was reset (e.g. a
level rollover), so it is discarded and the previous rate stays
published.
"""

from __future__ import annotations

import math
import random
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from warden.core.logging import get_logger
from warden.utils.time import now_ms

_logger = get_logger("telemetry.rate")

WINDOW_MS = 70_000
MIN_SPAN_MS = 5_000
PERSIST_PROBABILITY = 0.2


@dataclass(frozen=True)
class TelemetrySample:
    """One cumulative-metric reading."""

    timestamp: int
    metric: int


class RateEstimator:
    """Smoothed rate and ETA for one instance.

    Args:
        seed_rate: Last persisted rate, shown until a real one is computed.
        persist: Called with the integer rate string when a published rate
            is sampled for write-back onto the instance record.
        rng: Random source deciding when to persist.
    """

    def __init__(
        self,
        seed_rate: float | None = None,
        persist: Callable[[str], None] | None = None,
        rng: random.Random | None = None,
        persist_probability: float = PERSIST_PROBABILITY,
    ) -> None:
        self._samples: deque[TelemetrySample] = deque()
        self._rate: float | None = None
        self._seed_rate = seed_rate
        self._persist = persist
        self._rng = rng or random.Random()
        self._persist_probability = persist_probability

    @property
    def samples(self) -> tuple[TelemetrySample, ...]:
        return tuple(self._samples)

    @property
    def rate(self) -> float | None:
        """The published rate, or the seed rate if none was computed yet."""
        return self._rate if self._rate is not None else self._seed_rate

    @property
    def is_seeded_only(self) -> bool:
        return self._rate is None and self._seed_rate is not None

    def observe(self, metric: int, timestamp: int | None = None) -> float | None:
        """Fold a new cumulative reading into the window.

        Returns:
            The newly published rate, or None if this sample did not
            publish one (window too short, negative slope, bad metric).
        """
        if metric < 0:
            return None
        now = timestamp if timestamp is not None else now_ms()
        self._samples.append(TelemetrySample(now, metric))

        cutoff = now - WINDOW_MS
        while self._samples and self._samples[0].timestamp <= cutoff:
            self._samples.popleft()

        if len(self._samples) < 2:
            return None
        oldest, newest = self._samples[0], self._samples[-1]
        span_ms = newest.timestamp - oldest.timestamp
        if span_ms <= MIN_SPAN_MS:
            return None

        rate = (newest.metric - oldest.metric) / (span_ms / 60_000)
        if rate < 0:
            _logger.debug("rate.reset_detected", rate=rate, kept=self._rate)
            return None

        self._rate = rate
        if self._persist is not None and self._rng.random() < self._persist_probability:
            self._persist(str(math.floor(rate)))
        return rate

    def eta_minutes(self, current: int | None, target: int | None) -> float | None:
        """Minutes until ``current`` reaches ``target`` at the published rate."""
        rate = self.rate
        if rate is None or rate <= 0 or current is None or target is None:
            return None
        if current >= target:
            return None
        return (target - current) / rate

    def reset(self) -> None:
        """Forget all samples, the published rate and the seed."""
        self._samples.clear()
        self._rate = None
        self._seed_rate = None


def format_rate(rate: float | None) -> str:
    """Render a rate for display: whole units per minute or ``--``."""
    if rate is None:
        return "--"
    return str(math.floor(rate))


def format_eta(minutes: float | None) -> str:
    """Render an ETA: ``"12m"`` under an hour, ``"2h 5m"`` above, else ``--``."""
    if minutes is None or not math.isfinite(minutes):
        return "--"
    if minutes < 60:
        return f"{math.ceil(minutes)}m"
    hours = math.floor(minutes / 60)
    mins = math.ceil(minutes % 60)
    return f"{hours}h {mins}m"


def parse_rate_hint(value: str | None) -> float | None:
    """Turn a persisted ``last_known_rate`` back into a number, if it is one."""
    if value is None or value.strip() in ("", "--"):
        return None
    try:
        rate = float(value)
    except ValueError:
        return None
    return rate if math.isfinite(rate) and rate >= 0 else None


class RateBook:
    """Per-instance estimators keyed by instance id."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._estimators: dict[str, RateEstimator] = {}
        self._rng = rng

    def get(
        self,
        instance_id: str,
        seed: str | None = None,
        persist: Callable[[str], None] | None = None,
    ) -> RateEstimator:
        """Return the instance's estimator, creating it on first use."""
        estimator = self._estimators.get(instance_id)
        if estimator is None:
            estimator = RateEstimator(
                seed_rate=parse_rate_hint(seed), persist=persist, rng=self._rng,
            )
            self._estimators[instance_id] = estimator
        return estimator

    def reset(self, instance_id: str) -> None:
        estimator = self._estimators.get(instance_id)
        if estimator is not None:
            estimator.reset()

    def discard(self, instance_id: str) -> None:
        self._estimators.pop(instance_id, None)

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._estimators


__all__ = [
    "MIN_SPAN_MS",
    "RateBook",
    "RateEstimator",
    "TelemetrySample",
    "WINDOW_MS",
    "format_eta",
    "format_rate",
    "parse_rate_hint",
]
