"""
Clock Sources - Monotonic elapsed time for the sequencer

MonotonicClock wraps time.monotonic() relative to a resettable origin.
ManualClock is advanced explicitly and makes every timing path
deterministic under test.
"""

import time


class MonotonicClock:
    """
    Monotonic seconds since an arbitrary start instant.
    - No background thread
    - reset() moves the origin to now
    """

    def __init__(self):
        self._origin = time.monotonic()

    def now(self) -> float:
        return time.monotonic() - self._origin

    def reset(self) -> None:
        self._origin = time.monotonic()


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def set(self, seconds: float) -> None:
        if seconds < self._now:
            raise ValueError(f"Clock cannot go backwards ({seconds} < {self._now})")
        self._now = float(seconds)

    def advance(self, seconds: float) -> float:
        self.set(self._now + seconds)
        return self._now

    def reset(self) -> None:
        self._now = 0.0
