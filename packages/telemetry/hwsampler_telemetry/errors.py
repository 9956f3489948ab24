"""Telemetry error taxonomy."""

from __future__ import annotations


class TelemetryError(Exception):
    pass


class TelemetryUnavailableError(TelemetryError):
    """The OS CPU/memory interface could not be opened."""


class GpuUnavailableError(TelemetryError):
    """The GPU driver interface could not be opened."""


class GpuReadError(TelemetryError):
    def __init__(self, index: int, reason: str) -> None:
        super().__init__(f"gpu {index}: {reason}")
        self.index = index
        self.reason = reason


class SnapshotDecodeError(TelemetryError):
    pass
