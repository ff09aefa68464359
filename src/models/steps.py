"""Pydantic models for the step count and pipeline control endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from src.models.base import StrideBase


# ---------- Step count ----------

class StepCountRead(StrideBase):
    steps: int = Field(ge=0)
    last_upload_at: datetime | None = None


# ---------- Pipeline ----------

class PipelineStatsRead(StrideBase):
    batches_flushed: int = 0
    batches_inactive: int = 0
    uploads_succeeded: int = 0
    uploads_failed: int = 0
    steps_applied: int = 0
    in_flight: int = 0
    buffered_samples: int = 0


class PipelineStatusRead(StrideBase):
    state: str
    steps: int = Field(ge=0)
    buffer_capacity: int
    sampling_frequency_hz: int
    activity_threshold: float
    max_concurrent_uploads: int
    stats: PipelineStatsRead


class SampleBatchCreate(StrideBase):
    samples: list[float] = Field(min_length=1, max_length=100_000)


class SampleBatchAccepted(StrideBase):
    accepted: int
    buffered_samples: int
