"""Time sources for the profiler.

Instants and durations are integer nanoseconds. ``RealClock`` reads the
monotonic ``perf_counter_ns``; ``VirtualClock`` only moves when told to, so
test output is reproducible.
"""

import time
from datetime import datetime, timedelta, timezone

from beartype import beartype

# Instant 0 of a VirtualClock renders as this wall time.
VIRTUAL_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)


class Clock:
    """Interface shared by the real and virtual clocks."""

    def now(self) -> int:
        raise NotImplementedError

    def wall_time(self, instant: int) -> datetime:
        """Convert an instant from ``now()`` into a wall-clock datetime."""
        raise NotImplementedError


class RealClock(Clock):
    def __init__(self) -> None:
        # Anchor pair used to map monotonic instants onto wall time.
        self._anchor_wall = time.time_ns()
        self._anchor_mono = time.perf_counter_ns()

    def now(self) -> int:
        return time.perf_counter_ns()

    def wall_time(self, instant: int) -> datetime:
        ns = self._anchor_wall + (instant - self._anchor_mono)
        return datetime.fromtimestamp(ns / 1e9).astimezone()


class VirtualClock(Clock):
    """Manually advanced clock.

    Example:
        clock = VirtualClock()
        start = clock.now()
        clock.advance(by=10_000_000)
        assert clock.now() - start == 10_000_000
    """

    @beartype
    def __init__(self, start: int = 0) -> None:
        assert start >= 0, f"Virtual clock cannot start before its epoch: {start}"
        self._now = start

    def now(self) -> int:
        return self._now

    @beartype
    def advance(self, by: int) -> None:
        if by < 0:
            raise ValueError(f"Cannot move a clock backwards: by={by}")
        self._now += by

    def wall_time(self, instant: int) -> datetime:
        return VIRTUAL_EPOCH + timedelta(microseconds=instant // 1000)
