"""Fixed-cadence sampling loop: build a snapshot, emit it, sleep, repeat."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from hwsampler_telemetry import Snapshot

from .sinks import Sink, SinkError


logger = logging.getLogger("hwsampler.loop")


class LoopState(str, Enum):
    SAMPLING = "Sampling"
    IDLE = "Idle"
    STOPPED = "Stopped"


@dataclass
class LoopStats:
    state: LoopState = LoopState.SAMPLING
    cycles: int = 0
    emitted: int = 0
    emit_errors: int = 0
    last_cycle_s: float = 0.0
    last_error: str | None = None


class SamplingLoop:
    """Runs refresh -> build -> emit, then sleeps ``poll_ms`` after each cycle.

    The interval is measured from the end of a cycle, so slow reads stretch the
    period instead of being caught up. ``stop()`` is honored between cycles
    only; a cycle in flight always completes.
    """

    def __init__(
        self,
        build: Callable[[], Snapshot],
        sink: Sink,
        poll_ms: int = 1000,
        clock: Callable[[], float] = time.perf_counter,
        wait: Callable[[float], bool] | None = None,
    ) -> None:
        self._build = build
        self._sink = sink
        self.poll_ms = max(0, int(poll_ms))
        self._clock = clock
        self._stop = threading.Event()
        # Returns True when the idle period was cut short by a stop request.
        self._wait = wait if wait is not None else self._stop.wait
        self._stats = LoopStats()

    @property
    def stats(self) -> LoopStats:
        return self._stats

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def _emit(self, snapshot: Snapshot) -> None:
        try:
            self._sink.emit(snapshot)
        except (SinkError, OSError) as exc:
            self._stats.emit_errors += 1
            self._stats.last_error = str(exc)
            logger.warning(
                "emit failed, snapshot dropped: %s",
                exc,
                extra={"event": "emit_error", "cycle": self._stats.cycles + 1},
            )
            return
        self._stats.emitted += 1

    def run_once(self) -> Snapshot:
        self._stats.state = LoopState.SAMPLING
        start = self._clock()
        snapshot = self._build()
        self._emit(snapshot)
        self._stats.cycles += 1
        self._stats.last_cycle_s = max(self._clock() - start, 0.0)
        self._stats.state = LoopState.IDLE
        return snapshot

    def _reached(self, max_cycles: int | None) -> bool:
        return max_cycles is not None and self._stats.cycles >= max_cycles

    def run(self, max_cycles: int | None = None) -> int:
        """Loop until stopped (or ``max_cycles`` completed); return completed cycles."""
        interval_s = self.poll_ms / 1000.0
        logger.info("sampling every %d ms", self.poll_ms, extra={"event": "loop_start"})
        try:
            while not self._stop.is_set() and not self._reached(max_cycles):
                self.run_once()
                if self._reached(max_cycles):
                    break
                if self._wait(interval_s) or self._stop.is_set():
                    break
        finally:
            self._stats.state = LoopState.STOPPED
            logger.info(
                "sampling stopped after %d cycle(s), %d emit error(s)",
                self._stats.cycles,
                self._stats.emit_errors,
                extra={"event": "loop_stop"},
            )
        return self._stats.cycles
