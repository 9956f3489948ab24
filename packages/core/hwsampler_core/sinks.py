"""Snapshot sinks: line-delimited JSON to a stream or file, optionally queued."""

from __future__ import annotations

import logging
import queue
import sys
import threading
from pathlib import Path
from typing import Protocol, TextIO

from hwsampler_telemetry import Snapshot, encode_line


logger = logging.getLogger("hwsampler.sink")


class SinkError(Exception):
    pass


class Sink(Protocol):
    def emit(self, snapshot: Snapshot) -> None: ...

    def close(self) -> None: ...


class StreamSink:
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def emit(self, snapshot: Snapshot) -> None:
        try:
            self._stream.write(encode_line(snapshot))
            self._stream.flush()
        except (OSError, ValueError) as exc:
            # ValueError: write to a closed stream.
            raise SinkError(f"stream write failed: {exc}") from exc

    def close(self) -> None:
        try:
            self._stream.flush()
        except (OSError, ValueError) as exc:
            logger.warning("sink flush on close failed: %s", exc, extra={"event": "sink_close_error"})


class FileSink(StreamSink):
    def __init__(self, path: Path, append: bool = True) -> None:
        self.path = path
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path.open("a" if append else "w", encoding="utf-8"))

    def close(self) -> None:
        super().close()
        self._stream.close()


class QueuedSink:
    """Bounded queue in front of a slow sink.

    ``emit`` never blocks the sampler. When the queue is full the oldest pending
    snapshot is dropped and counted in ``dropped``.
    """

    _STOP = object()

    def __init__(self, inner: Sink, maxsize: int = 16) -> None:
        self.inner = inner
        self.dropped = 0
        self.failed = 0
        self._queue: queue.Queue[object] = queue.Queue(maxsize=max(1, maxsize))
        self._lock = threading.Lock()
        self._worker = threading.Thread(target=self._drain, name="hwsampler-sink", daemon=True)
        self._worker.start()

    def emit(self, snapshot: Snapshot) -> None:
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(snapshot)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                        self._queue.task_done()
                        self.dropped += 1
                    except queue.Empty:
                        continue

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                self.inner.emit(item)  # type: ignore[arg-type]
            except Exception as exc:
                # Keep draining after any sink failure.
                self.failed += 1
                logger.warning("queued emit failed: %s", exc, extra={"event": "emit_error"})
            finally:
                self._queue.task_done()

    def join(self) -> None:
        self._queue.join()

    def close(self) -> None:
        with self._lock:
            self._queue.put(self._STOP)
        self._worker.join()
        if self.dropped:
            logger.warning(
                "sink queue dropped %d snapshot(s)", self.dropped, extra={"event": "sink_dropped"}
            )
        self.inner.close()


def open_sink(path: str | None = None, append: bool = True, queue_size: int = 0) -> Sink:
    sink: Sink = FileSink(Path(path).expanduser(), append=append) if path else StreamSink()
    if queue_size > 0:
        return QueuedSink(sink, maxsize=queue_size)
    return sink
