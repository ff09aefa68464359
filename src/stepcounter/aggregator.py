"""Cumulative step count owner.

Upload completions arrive from the worker loop in any order, so every
mutation of AggregateState goes through ``apply_delta`` or ``reset`` under a
single re-entrant lock.  Observers are notified while the lock is held so
events reach them in mutation order.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone

from src.stepcounter.base import AggregateState, StepCountEvent, StepCountObserver

logger = logging.getLogger("stridesync.stepcounter.aggregator")


class StepAggregator:
    """Apply step deltas and resets to one AggregateState."""

    def __init__(
        self,
        state: AggregateState | None = None,
        observer: StepCountObserver | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            state:    State to own.  A fresh zeroed state is created if omitted.
            observer: Callback(StepCountEvent) invoked after each mutation.
        """
        self._state = state or AggregateState()
        self._observer = observer
        self._lock = threading.RLock()

    @property
    def cumulative_steps(self) -> int:
        with self._lock:
            return self._state.cumulative_steps

    def snapshot(self) -> AggregateState:
        """Return a copy of the current state."""
        with self._lock:
            return replace(self._state)

    def apply_delta(self, steps: int) -> int:
        """Add ``steps`` to the cumulative count and notify.

        Args:
            steps: Non-negative step delta from one uploaded batch.

        Returns:
            The new cumulative count.

        Raises:
            ValueError: If steps is negative.
        """
        if steps < 0:
            raise ValueError(f"Step delta must be >= 0, got {steps}")

        with self._lock:
            self._state.cumulative_steps += steps
            self._state.last_upload_at = datetime.now(timezone.utc)
            total = self._state.cumulative_steps
            self._notify(total)

        logger.info("Applied %d steps (cumulative=%d)", steps, total)
        return total

    def reset(self) -> None:
        """Zero the cumulative count and notify with 0."""
        with self._lock:
            self._state.cumulative_steps = 0
            self._notify(0)
        logger.info("Step count reset")

    def _notify(self, steps: int) -> None:
        if self._observer is None:
            return
        try:
            self._observer(StepCountEvent(steps=steps))
        except Exception:
            logger.exception("Step count observer failed")
