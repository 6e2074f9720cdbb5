"""Telemetry: access-path fetching, schema-agnostic extraction, rates and polling."""

from warden.telemetry.extractor import ProfileSnapshot, ProgressSnapshot
from warden.telemetry.fetch import TelemetryFetcher, TelemetryKind
from warden.telemetry.monitor import InstanceTelemetry, TelemetryMonitor
from warden.telemetry.rate import RateBook, RateEstimator

__all__ = [
    "InstanceTelemetry",
    "ProfileSnapshot",
    "ProgressSnapshot",
    "RateBook",
    "RateEstimator",
    "TelemetryFetcher",
    "TelemetryKind",
    "TelemetryMonitor",
]
