"""Core data models and collaborator interfaces for the step-count pipeline.

Every component of the pipeline exchanges the types defined here.  A
``Batch`` is the unit of work: it is captured by the SampleBuffer at flush
time, classified by the ActivityGate, and serialized by the UploadClient.
Nothing downstream of the buffer ever mutates a batch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence

# One vertical-acceleration reading (m/s², single axis).
Sample = float

SampleCallback = Callable[[Sample], None]


# ---------------------------------------------------------------------------
# Batches and wire messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Batch:
    """Immutable, ordered run of samples captured when the buffer filled.

    Attributes:
        samples: The readings in arrival order.
        sequence: 1-based flush counter within the pipeline run.
    """

    samples: tuple[float, ...]
    sequence: int = 0

    @classmethod
    def from_samples(cls, samples: Sequence[float], sequence: int = 0) -> Batch:
        return cls(samples=tuple(float(s) for s in samples), sequence=sequence)

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self):
        return iter(self.samples)


@dataclass(frozen=True)
class UploadRequest:
    """One batch plus the metadata the step-estimation service needs.

    Attributes:
        batch:                 The significant batch being uploaded.
        elapsed_seconds:       Seconds between the previous flush and this one.
        sampling_frequency_hz: Sensor sampling rate.
        batch_size:            Buffer capacity (doubles as the service's FFT size).
        device_label:          Device / session name reported to the service.
    """

    batch: Batch
    elapsed_seconds: float
    sampling_frequency_hz: int
    batch_size: int
    device_label: str

    def to_wire(self) -> dict:
        """Return the JSON body expected by the step-estimation service."""
        return {
            "verticalAccelerations": list(self.batch.samples),
            "time": float(self.elapsed_seconds),
            "samplingFrequency": int(self.sampling_frequency_hz),
            "fftSize": int(self.batch_size),
            "name": self.device_label,
        }


@dataclass(frozen=True)
class UploadResponse:
    """Parsed service reply.  ``steps_delta`` is never negative."""

    steps_delta: int = 0


# ---------------------------------------------------------------------------
# Aggregate state and notifications
# ---------------------------------------------------------------------------


@dataclass
class AggregateState:
    """Cumulative step count for a single pipeline run.

    Only StepAggregator mutates this object.

    Attributes:
        cumulative_steps: Steps accepted since the last reset.
        last_upload_at:   UTC time the most recent delta was applied.
    """

    cumulative_steps: int = 0
    last_upload_at: datetime | None = None


@dataclass(frozen=True)
class StepCountEvent:
    """Notification carrying the new cumulative step count."""

    steps: int


StepCountObserver = Callable[[StepCountEvent], None]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class UploadError(Exception):
    """Base class for failures that drop a single batch."""


class TransportError(UploadError):
    """Connection, DNS or timeout failure talking to the service."""


class ProtocolError(UploadError):
    """The service answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(message or f"Step service returned HTTP {status_code}")


class BufferInvariantViolation(AssertionError):
    """A batch whose length differs from the buffer capacity reached downstream."""


def check_batch_size(batch: Batch, capacity: int) -> None:
    """Raise BufferInvariantViolation unless ``batch`` holds exactly ``capacity`` samples."""
    if len(batch) != capacity:
        raise BufferInvariantViolation(
            f"Batch #{batch.sequence} has {len(batch)} samples, expected {capacity}"
        )


# ---------------------------------------------------------------------------
# Sensor collaborator
# ---------------------------------------------------------------------------


class SampleSource(ABC):
    """Push stream of vertical-acceleration samples.

    Implementations deliver samples from their own background thread.  The
    pipeline registers a callback with ``start`` and unregisters with
    ``stop``; after ``stop`` returns no further callbacks may be made.
    """

    SOURCE_ID: str = ""

    @abstractmethod
    def start(self, callback: SampleCallback) -> None:
        """Begin delivering samples to ``callback``."""

    @abstractmethod
    def stop(self) -> None:
        """Stop delivering samples and release the background thread."""

    @property
    @abstractmethod
    def sampling_frequency_hz(self) -> int:
        """Target sampling rate of this source."""
