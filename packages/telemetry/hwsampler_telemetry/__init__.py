"""Host telemetry adapters, snapshot model, and wire codec."""

from .codec import decode_line, encode_line, snapshot_from_dict, snapshot_to_dict
from .errors import (
    GpuReadError,
    GpuUnavailableError,
    SnapshotDecodeError,
    TelemetryError,
    TelemetryUnavailableError,
)
from .models import CoreMetric, CpuMetric, GpuMetric, MemoryMetric, Snapshot
from .provider import (
    DeviceHandle,
    NullGpuAdapter,
    NvmlGpuAdapter,
    SnapshotBuilder,
    SystemAdapter,
    TelemetryProvider,
    cpu_brand,
    open_provider,
)

__all__ = [
    "CoreMetric",
    "CpuMetric",
    "DeviceHandle",
    "GpuMetric",
    "GpuReadError",
    "GpuUnavailableError",
    "MemoryMetric",
    "NullGpuAdapter",
    "NvmlGpuAdapter",
    "Snapshot",
    "SnapshotBuilder",
    "SnapshotDecodeError",
    "SystemAdapter",
    "TelemetryError",
    "TelemetryProvider",
    "TelemetryUnavailableError",
    "cpu_brand",
    "decode_line",
    "encode_line",
    "open_provider",
    "snapshot_from_dict",
    "snapshot_to_dict",
]
