"""Simulated clock: virtual route time advanced by wall time times a multiplier."""

from contextlib import contextmanager
from enum import Enum
from typing import Iterator


class ClockRange(Enum):
    CLAMPED = "clamped"  # stop at the bounds
    UNBOUNDED = "unbounded"  # no bounds at all
    LOOP_STOP = "loop-stop"  # wrap back to start after passing stop


class SimulatedClock:
    """Virtual time between ``start`` and ``stop`` (seconds)."""

    def __init__(
        self,
        start: float,
        stop: float,
        multiplier: float = 0.0,
        clock_range: ClockRange = ClockRange.CLAMPED,
    ):
        if stop <= start:
            raise ValueError(f"Clock stop ({stop}) must be after start ({start})")
        self.start = float(start)
        self.stop = float(stop)
        self.multiplier = multiplier
        self.clock_range = clock_range
        self.should_animate = False
        self._current = self.start

    @property
    def current_time(self) -> float:
        return self._current

    @current_time.setter
    def current_time(self, value: float) -> None:
        value = float(value)
        if self.clock_range is not ClockRange.UNBOUNDED:
            value = min(max(value, self.start), self.stop)
        self._current = value

    @property
    def at_end(self) -> bool:
        return self._current >= self.stop

    def tick(self, wall_dt: float) -> float:
        """Advance by ``wall_dt`` wall seconds and return the new simulated time."""
        if not self.should_animate or wall_dt <= 0:
            return self._current
        new_time = self._current + wall_dt * self.multiplier
        if self.clock_range is ClockRange.CLAMPED:
            new_time = min(max(new_time, self.start), self.stop)
        elif self.clock_range is ClockRange.LOOP_STOP and new_time > self.stop:
            new_time = self.start
        self._current = new_time
        return new_time

    @contextmanager
    def unbounded(self) -> Iterator["SimulatedClock"]:
        """Lift the bounds temporarily; the clock is always left clamped afterwards."""
        self.clock_range = ClockRange.UNBOUNDED
        try:
            yield self
        finally:
            self.clock_range = ClockRange.CLAMPED
