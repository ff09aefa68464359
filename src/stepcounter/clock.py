"""Flush-to-flush elapsed time tracking."""

from __future__ import annotations

import threading
import time
from typing import Callable


class SampleClock:
    """Measures the seconds between consecutive flushes.

    ``mark()`` returns the time since the previous mark (or since ``start()``)
    and moves the reference point to now, under a lock so two flushes can
    never claim the same interval.
    """

    def __init__(self, time_fn: Callable[[], float] = time.monotonic) -> None:
        self._time_fn = time_fn
        self._lock = threading.Lock()
        self._last: float = time_fn()

    def start(self) -> None:
        with self._lock:
            self._last = self._time_fn()

    def mark(self) -> float:
        with self._lock:
            now = self._time_fn()
            elapsed = max(now - self._last, 0.0)
            self._last = now
        return elapsed
