"""CPU/memory and GPU adapters plus the snapshot builder that composes them."""

from __future__ import annotations

import logging
import platform
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import psutil

from .errors import GpuReadError, GpuUnavailableError, TelemetryUnavailableError
from .models import CoreMetric, CpuMetric, GpuMetric, MemoryMetric, Snapshot


logger = logging.getLogger("hwsampler.telemetry")

UNKNOWN_CPU = "Unknown CPU"

_CPUINFO_KEYS = ("model name", "Hardware", "Processor", "cpu model")


def _brand_from_cpuinfo(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""
    fields: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields.setdefault(key.strip(), value.strip())
    for key in _CPUINFO_KEYS:
        if fields.get(key):
            return fields[key]
    return ""


def cpu_brand(system: str | None = None, cpuinfo: Path = Path("/proc/cpuinfo")) -> str:
    """Return the CPU brand string from the OS, independent of per-core data."""
    system = system or platform.system()
    brand = ""
    if system == "Linux":
        brand = _brand_from_cpuinfo(cpuinfo)
    elif system == "Darwin":
        try:
            brand = subprocess.check_output(
                ["sysctl", "-n", "machdep.cpu.brand_string"], text=True, timeout=2
            )
        except (OSError, subprocess.SubprocessError):
            brand = ""
    if not brand.strip():
        brand = platform.processor()
    return brand.strip() or UNKNOWN_CPU


@dataclass
class _CpuState:
    usage: float = 0.0
    frequency: int = 0
    per_core_usage: tuple[float, ...] = ()
    per_core_frequency: tuple[int, ...] = ()


class SystemAdapter:
    """CPU and memory counters backed by psutil, refreshed in place each tick.

    ``read_cpu``/``read_memory`` project the most recent ``refresh``. Before the
    first refresh they return zeroed values with no cores.
    """

    def __init__(self, ps: Any = None, brand: Callable[[], str] = cpu_brand) -> None:
        self._ps = ps if ps is not None else psutil
        self._brand_fn = brand
        self._name = UNKNOWN_CPU
        self._cpu = _CpuState()
        self._memory = MemoryMetric(ram_used=0, ram_total=0, swap_used=0, swap_total=0)

    def initialize(self) -> None:
        ps = self._ps
        try:
            # Prime non-blocking CPU measurement.
            ps.cpu_percent(interval=None)
            ps.cpu_percent(interval=None, percpu=True)
            ps.virtual_memory()
        except Exception as exc:
            raise TelemetryUnavailableError(f"cannot open OS stats interface: {exc}") from exc
        self._name = self._brand_fn() or UNKNOWN_CPU
        logger.info("cpu telemetry ready: %s", self._name, extra={"event": "cpu_adapter_ready"})

    def _frequencies(self, core_count: int) -> tuple[int, tuple[int, ...]]:
        ps = self._ps
        try:
            total = ps.cpu_freq()
            per_core = ps.cpu_freq(percpu=True) or []
        except (OSError, NotImplementedError):
            return 0, (0,) * core_count

        aggregate = int(total.current) if total else 0
        if len(per_core) == core_count:
            return aggregate, tuple(int(f.current) for f in per_core)
        return aggregate, (aggregate,) * core_count

    def refresh(self) -> None:
        ps = self._ps
        per_core = tuple(float(u) for u in (ps.cpu_percent(interval=None, percpu=True) or ()))
        usage = float(ps.cpu_percent(interval=None)) if per_core else 0.0
        aggregate_freq, per_core_freq = self._frequencies(len(per_core))
        self._cpu = _CpuState(
            usage=usage,
            frequency=aggregate_freq,
            per_core_usage=per_core,
            per_core_frequency=per_core_freq,
        )

        vm = ps.virtual_memory()
        swap = ps.swap_memory()
        self._memory = MemoryMetric(
            ram_used=max(int(vm.total) - int(vm.available), 0),
            ram_total=int(vm.total),
            swap_used=int(swap.used),
            swap_total=int(swap.total),
        )

    @property
    def core_count(self) -> int:
        return len(self._cpu.per_core_usage)

    def read_cpu(self) -> CpuMetric:
        state = self._cpu
        return CpuMetric(
            name=self._name,
            usage=state.usage,
            frequency=state.frequency,
            cores=tuple(
                CoreMetric(usage=u, frequency=f)
                for u, f in zip(state.per_core_usage, state.per_core_frequency)
            ),
        )

    def read_memory(self) -> MemoryMetric:
        return self._memory


@dataclass(frozen=True)
class DeviceHandle:
    index: int
    handle: Any
    name: str


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def memory_fraction(used: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return max(0.0, min(1.0, float(used) / float(total)))


class NullGpuAdapter:
    """Stand-in when GPU telemetry is optional and the driver is absent."""

    @property
    def devices(self) -> tuple[DeviceHandle, ...]:
        return ()

    def initialize(self) -> tuple[DeviceHandle, ...]:
        return ()

    def read_all(self) -> tuple[GpuMetric, ...]:
        return ()

    def shutdown(self) -> None:
        return None


class NvmlGpuAdapter:
    """NVIDIA devices via NVML. Devices are enumerated once and owned here."""

    def __init__(self, nvml: Any = None) -> None:
        self._nvml = nvml
        self._devices: tuple[DeviceHandle, ...] = ()
        self._initialized = False

    @property
    def devices(self) -> tuple[DeviceHandle, ...]:
        return self._devices

    def initialize(self) -> tuple[DeviceHandle, ...]:
        if self._nvml is None:
            try:
                import pynvml  # type: ignore
            except ImportError as exc:
                raise GpuUnavailableError("pynvml is not installed") from exc
            self._nvml = pynvml

        nvml = self._nvml
        try:
            nvml.nvmlInit()
        except nvml.NVMLError as exc:
            raise GpuUnavailableError(f"NVML init failed: {exc}") from exc
        self._initialized = True
        try:
            count = int(nvml.nvmlDeviceGetCount())
        except nvml.NVMLError as exc:
            self.shutdown()
            raise GpuUnavailableError(f"NVML device count failed: {exc}") from exc

        devices: list[DeviceHandle] = []
        for index in range(count):
            try:
                handle = nvml.nvmlDeviceGetHandleByIndex(index)
                name = _text(nvml.nvmlDeviceGetName(handle)).strip()
            except nvml.NVMLError as exc:
                logger.warning(
                    "skipping gpu %d: %s", index, exc, extra={"event": "gpu_enumerate_error"}
                )
                continue
            devices.append(DeviceHandle(index=index, handle=handle, name=name))

        self._devices = tuple(devices)
        logger.info(
            "gpu telemetry ready: %d device(s)", len(self._devices), extra={"event": "gpu_adapter_ready"}
        )
        return self._devices

    def _not_supported(self, exc: Exception) -> bool:
        code = getattr(self._nvml, "NVML_ERROR_NOT_SUPPORTED", 3)
        return getattr(exc, "value", None) == code

    def _optional(self, device: DeviceHandle, query: Callable[[], Any], default: Any) -> Any:
        # Fields some boards lack (NVDEC, temperature sensor) fall back to a sentinel.
        try:
            return query()
        except self._nvml.NVMLError as exc:
            if self._not_supported(exc):
                return default
            raise GpuReadError(device.index, str(exc)) from exc

    def read(self, device: DeviceHandle) -> GpuMetric:
        nvml = self._nvml
        try:
            util = nvml.nvmlDeviceGetUtilizationRates(device.handle)
            mem = nvml.nvmlDeviceGetMemoryInfo(device.handle)
        except nvml.NVMLError as exc:
            raise GpuReadError(device.index, str(exc)) from exc

        decoder = self._optional(device, lambda: nvml.nvmlDeviceGetDecoderUtilization(device.handle)[0], 0)
        temp = self._optional(
            device, lambda: nvml.nvmlDeviceGetTemperature(device.handle, nvml.NVML_TEMPERATURE_GPU), 0
        )

        return GpuMetric(
            name=device.name,
            usage=float(util.gpu),
            decoder=float(decoder),
            memory=memory_fraction(int(mem.used), int(mem.total)),
            temperature=int(temp),
        )

    def read_all(self) -> tuple[GpuMetric, ...]:
        """Read every device; a device that fails is left out of this tick."""
        out: list[GpuMetric] = []
        for device in self._devices:
            try:
                out.append(self.read(device))
            except GpuReadError as exc:
                logger.warning(
                    "gpu read failed: %s", exc, extra={"event": "gpu_read_error", "gpu_index": exc.index}
                )
        return tuple(out)

    def shutdown(self) -> None:
        if not self._initialized:
            return
        nvml = self._nvml
        try:
            nvml.nvmlShutdown()
        except nvml.NVMLError as exc:
            logger.warning("NVML shutdown failed: %s", exc, extra={"event": "gpu_shutdown_error"})
        self._initialized = False
        self._devices = ()


class SnapshotBuilder:
    def __init__(
        self,
        system: SystemAdapter,
        gpu: NvmlGpuAdapter | NullGpuAdapter,
        with_timestamp: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.system = system
        self.gpu = gpu
        self.with_timestamp = with_timestamp
        self._clock = clock

    def build(self) -> Snapshot:
        self.system.refresh()
        return Snapshot(
            cpu=self.system.read_cpu(),
            memory=self.system.read_memory(),
            gpus=self.gpu.read_all(),
            timestamp=(self._clock() if self.with_timestamp else None),
        )


class TelemetryProvider:
    """Initializes both adapters once and hands out one snapshot per poll.

    CPU/memory failure is always fatal. GPU failure is fatal only with
    ``require_gpu``; otherwise snapshots carry an empty GPU list.
    """

    def __init__(
        self,
        *,
        require_gpu: bool = False,
        with_timestamp: bool = False,
        system: SystemAdapter | None = None,
        gpu: NvmlGpuAdapter | NullGpuAdapter | None = None,
    ) -> None:
        self.system = system or SystemAdapter()
        self.system.initialize()

        self.gpu: NvmlGpuAdapter | NullGpuAdapter = gpu or NvmlGpuAdapter()
        try:
            self.gpu.initialize()
        except GpuUnavailableError as exc:
            if require_gpu:
                raise
            logger.warning(
                "GPU telemetry unavailable, continuing without it: %s",
                exc,
                extra={"event": "gpu_unavailable"},
            )
            self.gpu = NullGpuAdapter()

        self.builder = SnapshotBuilder(self.system, self.gpu, with_timestamp=with_timestamp)

    @property
    def devices(self) -> tuple[DeviceHandle, ...]:
        return self.gpu.devices

    def poll(self) -> Snapshot:
        return self.builder.build()

    def close(self) -> None:
        self.gpu.shutdown()


def open_provider(require_gpu: bool = False, with_timestamp: bool = False) -> TelemetryProvider:
    """Open both telemetry sources; raises ``TelemetryError`` subclasses on fatal startup failure."""
    return TelemetryProvider(require_gpu=require_gpu, with_timestamp=with_timestamp)
