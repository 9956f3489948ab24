"""Typed telemetry models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CoreMetric:
    usage: float
    frequency: int


@dataclass(frozen=True)
class CpuMetric:
    name: str
    usage: float
    frequency: int
    cores: tuple[CoreMetric, ...] = ()


@dataclass(frozen=True)
class MemoryMetric:
    ram_used: int
    ram_total: int
    swap_used: int
    swap_total: int


@dataclass(frozen=True)
class GpuMetric:
    name: str
    usage: float
    decoder: float
    memory: float
    temperature: int


@dataclass(frozen=True)
class Snapshot:
    cpu: CpuMetric
    memory: MemoryMetric
    gpus: tuple[GpuMetric, ...] = ()
    timestamp: float | None = None
