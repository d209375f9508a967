"""Debounce bookkeeping for a single watched path."""
from __future__ import annotations

import time
from typing import Callable, Optional

Clock = Callable[[], float]


class DebounceGate:
    """Tracks pending changes and decides when an action may fire.

    The gate only holds flags and timestamps. Exclusive execution is the
    runner's job; the gate is told when a run begins so that it can reset.
    Elapsed time is measured from the start of the previous run, or from
    ``start()`` when nothing has run yet.
    """

    def __init__(self, interval: float, clock: Clock = time.monotonic):
        if interval < 0:
            raise ValueError("debounce interval must be non-negative")
        self._interval = interval
        self._clock = clock
        self._dirty = False
        self._started_at: Optional[float] = None
        self._last_run_at: Optional[float] = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def last_run_at(self) -> Optional[float]:
        return self._last_run_at

    def start(self) -> None:
        """Record the baseline used before the first run."""

        if self._started_at is None:
            self._started_at = self._clock()

    def mark_dirty(self) -> None:
        self._dirty = True

    def elapsed(self, now: Optional[float] = None) -> float:
        if now is None:
            now = self._clock()
        baseline = self._last_run_at
        if baseline is None:
            if self._started_at is None:
                self._started_at = now
            baseline = self._started_at
        return now - baseline

    def is_eligible(self, now: Optional[float] = None) -> bool:
        return self._dirty and self.elapsed(now) >= self._interval

    def begin_run(self, now: Optional[float] = None) -> None:
        """Reset the gate as a run is launched."""

        self._last_run_at = self._clock() if now is None else now
        self._dirty = False
