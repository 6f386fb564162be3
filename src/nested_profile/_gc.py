"""Garbage-collection accounting.

``GcAccounting`` hooks ``gc.callbacks``, keeps a running total of time spent
in collections, and after each collection records a synthetic ``gc`` frame
against whichever frame is open. The GC frame is a sibling of the frames
already recorded under that parent; it never opens a nesting level of its
own and is never itself profiled.
"""

import gc
import time
from collections.abc import Callable
from typing import Any

from beartype import beartype
from loguru import logger

from nested_profile._clock import VirtualClock
from nested_profile._engine import Profiler

# Reported GC duration under a VirtualClock, for reproducible output.
GC_TEST_SPAN = 10_000_000

OPAQUE = "<opaque>"


def gcs_done() -> int:
    """Total number of collections completed across all generations."""
    return sum(stat["collections"] for stat in gc.get_stats())


class GcAccounting:
    """Post-collection hook attributing GC pauses to the open frame.

    Args:
        profiler: Profiler whose config, clock and recorder are used
        gc_counter: Returns the number of completed collections

    Design by Contract:
        - record_gc() never raises and never re-enters itself
        - install() registers at most one callback per instance
        - with a VirtualClock every GC frame lasts exactly GC_TEST_SPAN and
          the clock advances by the same amount
    """

    @beartype
    def __init__(self, profiler: Profiler, gc_counter: Callable[[], int] = gcs_done) -> None:
        self.profiler = profiler
        self.gc_counter = gc_counter
        self.gc_elapsed_total = 0
        self._last_recorded_gc_elapsed = 0
        self._collection_started: int | None = None
        self._recording = False

    @property
    def installed(self) -> bool:
        return self._on_gc in gc.callbacks

    def install(self) -> None:
        if not self.installed:
            gc.callbacks.append(self._on_gc)

    def uninstall(self) -> None:
        if self.installed:
            gc.callbacks.remove(self._on_gc)

    def _on_gc(self, phase: str, info: dict[str, Any]) -> None:
        if phase == "start":
            self._collection_started = time.perf_counter_ns()
            return
        if self._collection_started is not None:
            self.gc_elapsed_total += time.perf_counter_ns() - self._collection_started
            self._collection_started = None
        self.record_gc()

    def record_gc(self) -> None:
        """Record one GC frame covering the GC time since the previous call."""
        # Collections triggered while recording (e.g. by the counter) are not
        # recorded again; the shared should_profile flag is left alone.
        if self._recording:
            return
        self._recording = True
        try:
            self._record_gc()
        except Exception as exc:
            logger.debug(f"gc accounting failed: {exc!r}")
        finally:
            self._recording = False

    def _record_gc(self) -> None:
        config = self.profiler.config
        gc_elapsed = self.gc_elapsed_total
        if not config.should_profile:
            self._last_recorded_gc_elapsed = gc_elapsed
            return

        clock = self.profiler.clock
        deterministic = isinstance(clock, VirtualClock)
        if deterministic:
            gc_took = GC_TEST_SPAN
            clock.advance(by=gc_took)
        else:
            gc_took = gc_elapsed - self._last_recorded_gc_elapsed
        self._last_recorded_gc_elapsed = gc_elapsed

        stop = clock.now()
        count = self.gc_counter()
        shown = OPAQUE if deterministic else count
        self.profiler.recorder.record_frame(
            stop - gc_took,
            stop,
            lambda: f"gc gcs_done={shown}",
        )
