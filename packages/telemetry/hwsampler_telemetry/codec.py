"""JSON-lines wire format for snapshots."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

from .errors import SnapshotDecodeError
from .models import CoreMetric, CpuMetric, GpuMetric, MemoryMetric, Snapshot


RECORD_SEPARATOR = "\n"


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    cpu = snapshot.cpu
    payload: dict[str, Any] = {
        "cpu": {
            "name": cpu.name,
            "usage": cpu.usage,
            "frequency": cpu.frequency,
            "cores": [asdict(core) for core in cpu.cores],
        },
        "memory": asdict(snapshot.memory),
        "gpus": [asdict(gpu) for gpu in snapshot.gpus],
    }
    if snapshot.timestamp is not None:
        payload["timestamp"] = snapshot.timestamp
    return payload


def snapshot_from_dict(data: dict[str, Any]) -> Snapshot:
    try:
        cpu = data["cpu"]
        mem = data["memory"]
        return Snapshot(
            cpu=CpuMetric(
                name=str(cpu["name"]),
                usage=float(cpu["usage"]),
                frequency=int(cpu["frequency"]),
                cores=tuple(
                    CoreMetric(usage=float(c["usage"]), frequency=int(c["frequency"])) for c in cpu["cores"]
                ),
            ),
            memory=MemoryMetric(
                ram_used=int(mem["ram_used"]),
                ram_total=int(mem["ram_total"]),
                swap_used=int(mem["swap_used"]),
                swap_total=int(mem["swap_total"]),
            ),
            gpus=tuple(
                GpuMetric(
                    name=str(g["name"]),
                    usage=float(g["usage"]),
                    decoder=float(g["decoder"]),
                    memory=float(g["memory"]),
                    temperature=int(g["temperature"]),
                )
                for g in data["gpus"]
            ),
            timestamp=(float(data["timestamp"]) if data.get("timestamp") is not None else None),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise SnapshotDecodeError(f"malformed snapshot record: {exc!r}") from exc


def encode_line(snapshot: Snapshot) -> str:
    return json.dumps(snapshot_to_dict(snapshot), separators=(",", ":")) + RECORD_SEPARATOR


def decode_line(line: str) -> Snapshot:
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        raise SnapshotDecodeError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise SnapshotDecodeError("snapshot record must be a JSON object")
    return snapshot_from_dict(data)
