"""
Running lap time for display.

Sampled at render cadence, independently of fix arrival, so the visible
time keeps moving between 1 Hz GPS updates.
"""

import time
from typing import Callable, Optional

from apex_timing.utils.conversions import format_elapsed


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000


class TimingClock:
    """Elapsed time in the current lap, derived on demand."""

    def __init__(self, clock: Callable[[], float] = monotonic_ms):
        """
        Args:
            clock: Millisecond clock sharing its epoch with fix timestamps
        """
        self._clock = clock
        self._lap_start: Optional[float] = None
        self._last_value = 0.0

    @property
    def running(self) -> bool:
        return self._lap_start is not None

    def start_lap(self, start: float):
        """Begin timing a lap that started at `start` (ms)."""
        self._lap_start = start

    def stop(self):
        """Freeze the display at its last value."""
        if self._lap_start is not None:
            self._last_value = self.elapsed()
        self._lap_start = None

    def reset(self):
        """Stop and show zero."""
        self._lap_start = None
        self._last_value = 0.0

    def elapsed(self, now: Optional[float] = None) -> float:
        """
        Elapsed milliseconds in the current lap.

        Returns the last value when no lap is running. Never negative,
        even if the fix clock runs slightly ahead of this one.
        """
        if self._lap_start is None:
            return self._last_value
        if now is None:
            now = self._clock()
        self._last_value = max(0.0, now - self._lap_start)
        return self._last_value

    def display(self, now: Optional[float] = None) -> str:
        """Elapsed time as mm:ss.cc."""
        return format_elapsed(self.elapsed(now))
