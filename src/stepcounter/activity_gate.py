"""Significance gate deciding whether a batch is worth uploading.

A batch counts as activity when the standard deviation of its readings
strictly exceeds a fixed threshold expressed in sensor units.  A phone lying
on a desk shows a deviation close to the sensor noise floor; walking is well
above 1 m/s².

Two formulas are available, chosen by ``activity_gate.deviation`` in
pipeline_config.yaml:

    sample      — Bessel-corrected, ``statistics.stdev`` (default)
    population  — ``statistics.pstdev``
"""

from __future__ import annotations

import logging
import statistics
from typing import Callable, Sequence

from src.stepcounter.base import Batch

logger = logging.getLogger("stridesync.stepcounter.gate")

DEFAULT_THRESHOLD = 0.5

DEVIATIONS: dict[str, Callable[[Sequence[float]], float]] = {
    "sample": statistics.stdev,
    "population": statistics.pstdev,
}


class ActivityGate:
    """Classify batches as significant activity or noise."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD, deviation: str = "sample") -> None:
        if threshold < 0:
            raise ValueError(f"Activity threshold must be >= 0, got {threshold}")
        if deviation not in DEVIATIONS:
            raise ValueError(
                f"Unknown deviation formula '{deviation}'. Available: {sorted(DEVIATIONS)}"
            )
        self._threshold = float(threshold)
        self._formula = deviation
        self._deviation_fn = DEVIATIONS[deviation]

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def formula(self) -> str:
        return self._formula

    def deviation(self, batch: Batch) -> float:
        """Standard deviation of the batch (0.0 for fewer than two samples)."""
        if len(batch) < 2:
            return 0.0
        return self._deviation_fn(batch.samples)

    def classify(self, batch: Batch) -> bool:
        """Return True if the batch shows significant activity.

        Args:
            batch: A flushed batch.

        Returns:
            True iff the deviation is strictly greater than the threshold.
        """
        sd = self.deviation(batch)
        significant = sd > self._threshold
        logger.debug(
            "Batch #%d: %s stdev=%.4f threshold=%.4f → %s",
            batch.sequence,
            self._formula,
            sd,
            self._threshold,
            "active" if significant else "inactive",
        )
        return significant
