"""CLI entrypoints for the sampler and its device listing."""

from __future__ import annotations

import argparse
import json
import signal
from importlib import metadata
from pathlib import Path

from hwsampler_core import AppConfig, SamplingLoop, load_config, open_sink
from hwsampler_core.logging_setup import configure_logging, get_logger, install_crash_hooks
from hwsampler_telemetry import TelemetryError, TelemetryProvider, open_provider


EXIT_STARTUP_FAILURE = 2


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _installed_version() -> str:
    try:
        return metadata.version("hwsampler")
    except metadata.PackageNotFoundError:
        return "0.1.0"


def _resolve_config(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(Path(args.config).expanduser() if args.config else None)
    if getattr(args, "poll_interval", None) is not None:
        cfg.sampler.poll_ms = max(0, args.poll_interval)
    if getattr(args, "require_gpu", False):
        cfg.sampler.require_gpu = True
    if getattr(args, "timestamp", False):
        cfg.sampler.timestamp = True
    if getattr(args, "output", None):
        cfg.output.path = None if args.output == "-" else args.output
    if getattr(args, "queue_size", None) is not None:
        cfg.output.queue_size = max(0, args.queue_size)
    return cfg


def _open_provider(cfg: AppConfig) -> TelemetryProvider | None:
    logger = get_logger()
    try:
        return open_provider(require_gpu=cfg.sampler.require_gpu, with_timestamp=cfg.sampler.timestamp)
    except TelemetryError as exc:
        logger.critical("telemetry startup failed: %s", exc, extra={"event": "startup_failed"})
        return None


def cmd_run(args: argparse.Namespace, cfg: AppConfig) -> int:
    logger = get_logger()

    provider = _open_provider(cfg)
    if provider is None:
        return EXIT_STARTUP_FAILURE

    try:
        sink = open_sink(cfg.output.path, append=cfg.output.append, queue_size=cfg.output.queue_size)
    except OSError as exc:
        logger.critical("cannot open output %s: %s", cfg.output.path, exc, extra={"event": "startup_failed"})
        provider.close()
        return EXIT_STARTUP_FAILURE
    loop = SamplingLoop(provider.poll, sink, poll_ms=cfg.sampler.poll_ms)

    def _request_stop(signum, _frame) -> None:
        logger.info("stop requested by signal %d", signum, extra={"event": "stop_requested"})
        loop.stop()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    try:
        loop.run(max_cycles=args.count)
    finally:
        sink.close()
        provider.close()
    return 0


def cmd_devices(args: argparse.Namespace, cfg: AppConfig) -> int:
    provider = _open_provider(cfg)
    if provider is None:
        return EXIT_STARTUP_FAILURE

    try:
        snapshot = provider.poll()
        _print_json(
            {
                "cpu": {"name": snapshot.cpu.name, "cores": len(snapshot.cpu.cores)},
                "gpus": [{"index": d.index, "name": d.name} for d in provider.devices],
            }
        )
    finally:
        provider.close()
    return 0


def _add_common(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--config", default=None, help="Optional path to a JSON config file")
    cmd.add_argument("--require-gpu", action="store_true", help="Fail at startup if no GPU driver is present")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hwsampler", description="Host CPU, memory and GPU telemetry sampler")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_installed_version()}")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="Emit one JSON snapshot per poll interval")
    _add_common(run_cmd)
    run_cmd.add_argument(
        "-p", "--poll-interval", type=int, default=None, help="Poll interval in milliseconds (default 1000)"
    )
    run_cmd.add_argument("-o", "--output", default=None, help="Output file; '-' or unset for stdout")
    run_cmd.add_argument("--timestamp", action="store_true", help="Add a UNIX timestamp to each snapshot")
    run_cmd.add_argument(
        "--queue-size", type=int, default=None, help="Buffer up to N snapshots in front of a slow sink"
    )
    run_cmd.add_argument("-n", "--count", type=int, default=None, help="Stop after N snapshots")
    run_cmd.set_defaults(func=cmd_run)

    devices_cmd = sub.add_parser("devices", help="Print detected CPU and GPUs")
    _add_common(devices_cmd)
    devices_cmd.set_defaults(func=cmd_devices)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = _resolve_config(args)
    configure_logging(keep_files=cfg.logging.keep_files, level=cfg.logging.level, file=cfg.logging.file)
    if cfg.logging.file:
        install_crash_hooks()
    return int(args.func(args, cfg))


if __name__ == "__main__":
    raise SystemExit(main())
