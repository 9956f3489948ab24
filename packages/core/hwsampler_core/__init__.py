"""Core sampler services for settings, logging, sinks, and the sampling loop."""

from .config import AppConfig, load_config, save_config
from .sampling_loop import LoopState, LoopStats, SamplingLoop
from .sinks import FileSink, QueuedSink, Sink, SinkError, StreamSink, open_sink

__all__ = [
    "AppConfig",
    "FileSink",
    "LoopState",
    "LoopStats",
    "QueuedSink",
    "SamplingLoop",
    "Sink",
    "SinkError",
    "StreamSink",
    "load_config",
    "open_sink",
    "save_config",
]
