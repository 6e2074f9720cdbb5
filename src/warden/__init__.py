"""Warden: lifecycle control and telemetry for fleets of remote automation jobs."""

__version__ = "0.3.0"

__all__ = ["__version__"]
