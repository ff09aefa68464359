"""Capacity-bounded sample accumulator with flush-on-full semantics.

The sensor thread calls ``ingest`` for every reading.  When the buffer
reaches capacity the whole contents are captured as an immutable Batch and
the internal list is cleared in the same critical section, so a concurrent
``ingest`` lands either entirely before or entirely after the flush.
"""

from __future__ import annotations

import logging
import threading

from src.stepcounter.base import Batch, Sample, check_batch_size

logger = logging.getLogger("stridesync.stepcounter.buffer")

DEFAULT_CAPACITY = 1024


class SampleBuffer:
    """Thread-safe accumulator that hands out full batches.

    Usage::

        buffer = SampleBuffer(capacity=1024)
        batch = buffer.ingest(9.81)
        if batch is not None:
            pipeline.submit(batch)   # outside the buffer's lock
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Initialize the buffer.

        Args:
            capacity: Number of samples per batch.  Fixed for the buffer's lifetime.

        Raises:
            ValueError: If capacity is not a positive integer.
        """
        if capacity < 1:
            raise ValueError(f"Buffer capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._samples: list[float] = []
        self._lock = threading.Lock()
        self._flushes = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def pending(self) -> int:
        """Number of samples waiting for the next flush."""
        with self._lock:
            return len(self._samples)

    @property
    def flush_count(self) -> int:
        with self._lock:
            return self._flushes

    def ingest(self, sample: Sample) -> Batch | None:
        """Append one sample; return a Batch if this sample filled the buffer.

        Args:
            sample: Vertical-acceleration reading.

        Returns:
            The captured Batch when the buffer reached capacity, else None.
        """
        with self._lock:
            self._samples.append(float(sample))
            if len(self._samples) < self._capacity:
                return None
            self._flushes += 1
            batch = Batch(samples=tuple(self._samples), sequence=self._flushes)
            self._samples.clear()

        check_batch_size(batch, self._capacity)
        logger.debug("Flushed batch #%d (%d samples)", batch.sequence, len(batch))
        return batch

    def clear(self) -> int:
        """Discard pending samples without flushing.

        Returns:
            Number of samples discarded.
        """
        with self._lock:
            dropped = len(self._samples)
            self._samples.clear()
        if dropped:
            logger.debug("Discarded %d buffered samples", dropped)
        return dropped
