"""Persistent sampler settings schema and load/save helpers."""

from __future__ import annotations

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 2
DEFAULT_POLL_MS = 1000

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class SamplerConfig:
    poll_ms: int = DEFAULT_POLL_MS
    require_gpu: bool = False
    timestamp: bool = False


@dataclass
class OutputConfig:
    path: str | None = None
    append: bool = True
    queue_size: int = 0


@dataclass
class LoggingConfig:
    level: str = "INFO"
    keep_files: int = 7
    file: bool = True


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def config_root() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "hwsampler"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "hwsampler"
    return Path.home() / ".config" / "hwsampler"


def config_path() -> Path:
    return config_root() / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _normalize_sampler(cfg: AppConfig) -> None:
    # No upper bound; 0 means sample as fast as the adapters allow.
    cfg.sampler.poll_ms = max(0, int(cfg.sampler.poll_ms))
    cfg.sampler.require_gpu = bool(cfg.sampler.require_gpu)
    cfg.sampler.timestamp = bool(cfg.sampler.timestamp)


def _normalize_output(cfg: AppConfig) -> None:
    cfg.output.queue_size = max(0, int(cfg.output.queue_size))
    if cfg.output.path == "" or cfg.output.path == "-":
        cfg.output.path = None


def _normalize_logging(cfg: AppConfig) -> None:
    level = str(cfg.logging.level).upper()
    cfg.logging.level = level if level in _LOG_LEVELS else "INFO"
    cfg.logging.keep_files = max(2, int(cfg.logging.keep_files))


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        # v1 was flat: {"poll_interval": ms, "output": "path"}.
        sampler = dict(data.get("sampler", {}) or {})
        if "poll_interval" in data:
            sampler.setdefault("poll_ms", data.pop("poll_interval"))
        data["sampler"] = sampler
        output = data.get("output")
        if isinstance(output, str) or output is None:
            data["output"] = {"path": output}
        data.setdefault("logging", {})
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logging.getLogger("hwsampler").warning(
            "ignoring unreadable config %s: %s", path, exc, extra={"event": "config_unreadable"}
        )
        return AppConfig()

    data = _migrate(raw)
    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        sampler=_merge(SamplerConfig, data.get("sampler", {})),
        output=_merge(OutputConfig, data.get("output", {})),
        logging=_merge(LoggingConfig, data.get("logging", {})),
    )

    _normalize_sampler(cfg)
    _normalize_output(cfg)
    _normalize_logging(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
