"""In-memory stand-ins for psutil, pynvml and sinks used across the suites."""

from __future__ import annotations

from collections import namedtuple
from dataclasses import dataclass, field

from hwsampler_core.sinks import SinkError


_Freq = namedtuple("_Freq", "current min max")
_VirtualMemory = namedtuple("_VirtualMemory", "total available used")
_Swap = namedtuple("_Swap", "total used")
_Util = namedtuple("_Util", "gpu memory")
_MemInfo = namedtuple("_MemInfo", "total used free")


class FakePsutil:
    def __init__(
        self,
        per_core=(10.0, 20.0, 30.0, 40.0),
        usage=25.0,
        freq=3600.0,
        per_core_freq=None,
        ram_total=16 * 1024**3,
        ram_available=10 * 1024**3,
        swap_total=2 * 1024**3,
        swap_used=512 * 1024**2,
        broken=False,
    ) -> None:
        self.per_core = list(per_core)
        self.usage = usage
        self.freq = freq
        self.per_core_freq = per_core_freq
        self.ram_total = ram_total
        self.ram_available = ram_available
        self.swap_total = swap_total
        self.swap_used = swap_used
        self.broken = broken
        self.calls = 0

    def cpu_percent(self, interval=None, percpu=False):
        if self.broken:
            raise PermissionError("/proc unavailable")
        self.calls += 1
        return list(self.per_core) if percpu else self.usage

    def cpu_freq(self, percpu=False):
        if percpu:
            if self.per_core_freq is None:
                return []
            return [_Freq(f, 0.0, f) for f in self.per_core_freq]
        return _Freq(self.freq, 0.0, self.freq) if self.freq is not None else None

    def virtual_memory(self):
        if self.broken:
            raise PermissionError("/proc unavailable")
        return _VirtualMemory(self.ram_total, self.ram_available, self.ram_total - self.ram_available)

    def swap_memory(self):
        return _Swap(self.swap_total, self.swap_used)


NVML_ERROR_NOT_SUPPORTED = 3
NVML_ERROR_GPU_IS_LOST = 15
NVML_ERROR_UNKNOWN = 999


class NVMLError(Exception):
    def __init__(self, message: str, value: int = NVML_ERROR_UNKNOWN) -> None:
        super().__init__(message)
        self.value = value


@dataclass
class FakeGpu:
    name: str = "NVIDIA GeForce RTX 4090"
    usage: int = 50
    decoder: int = 5
    mem_used: int = 4 * 1024**3
    mem_total: int = 24 * 1024**3
    temperature: int = 61


@dataclass
class FakeNvml:
    gpus: list[FakeGpu] = field(default_factory=list)
    failing: set[int] = field(default_factory=set)
    unsupported: set[str] = field(default_factory=set)
    init_error: bool = False
    count_error: bool = False
    shutdown_calls: int = 0

    NVMLError = NVMLError
    NVML_TEMPERATURE_GPU = 0
    NVML_ERROR_NOT_SUPPORTED = NVML_ERROR_NOT_SUPPORTED

    def nvmlInit(self) -> None:
        if self.init_error:
            raise NVMLError("Driver Not Loaded")

    def nvmlShutdown(self) -> None:
        self.shutdown_calls += 1

    def nvmlDeviceGetCount(self) -> int:
        if self.count_error:
            raise NVMLError("Unknown Error")
        return len(self.gpus)

    def nvmlDeviceGetHandleByIndex(self, index: int) -> int:
        return index

    def nvmlDeviceGetName(self, handle: int) -> bytes:
        return self.gpus[handle].name.encode("utf-8")

    def _check(self, handle: int) -> FakeGpu:
        if handle in self.failing:
            raise NVMLError("GPU is lost", NVML_ERROR_GPU_IS_LOST)
        return self.gpus[handle]

    def nvmlDeviceGetUtilizationRates(self, handle: int):
        gpu = self._check(handle)
        return _Util(gpu.usage, 0)

    def _field(self, name: str) -> None:
        if name in self.unsupported:
            raise NVMLError("Not Supported", NVML_ERROR_NOT_SUPPORTED)

    def nvmlDeviceGetDecoderUtilization(self, handle: int):
        gpu = self._check(handle)
        self._field("decoder")
        return [gpu.decoder, 167000]

    def nvmlDeviceGetMemoryInfo(self, handle: int):
        gpu = self._check(handle)
        return _MemInfo(gpu.mem_total, gpu.mem_used, gpu.mem_total - gpu.mem_used)

    def nvmlDeviceGetTemperature(self, handle: int, sensor: int) -> int:
        gpu = self._check(handle)
        self._field("temperature")
        return gpu.temperature


class ListSink:
    def __init__(self) -> None:
        self.snapshots = []
        self.closed = False

    def emit(self, snapshot) -> None:
        self.snapshots.append(snapshot)

    def close(self) -> None:
        self.closed = True


class FlakySink(ListSink):
    """Fails on the given 1-based emit attempts."""

    def __init__(self, fail_on=(1,)) -> None:
        super().__init__()
        self.fail_on = set(fail_on)
        self.attempts = 0

    def emit(self, snapshot) -> None:
        self.attempts += 1
        if self.attempts in self.fail_on:
            raise SinkError("broken pipe")
        super().emit(snapshot)
