"""Shared fixtures and fakes for step-count pipeline tests."""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.stepcounter.base import Batch, StepCountEvent
from src.stepcounter.clock import SampleClock
from src.stepcounter.config_loader import PipelineConfig
from src.stepcounter.upload_client import UploadClient

# Small capacity keeps the tests fast while exercising the same code paths.
TEST_CAPACITY = 8
TEST_ENDPOINT = "http://steps.test/fs"


def make_config(**overrides) -> PipelineConfig:
    values = dict(
        version="test",
        buffer_capacity=TEST_CAPACITY,
        sampling_frequency_hz=100,
        sensor_axis=2,
        activity_threshold=0.5,
        deviation="sample",
        max_concurrent_uploads=4,
        upload_timeout_seconds=1.0,
        success_status=range(200, 300),
    )
    values.update(overrides)
    return PipelineConfig(**values)


def walking_samples(n: int) -> list[float]:
    """Samples alternating 10 units apart — always above the threshold."""
    return [4.81 if i % 2 == 0 else 14.81 for i in range(n)]


def resting_samples(n: int) -> list[float]:
    """Constant samples — zero deviation."""
    return [9.81] * n


class FakeUploadClient:
    """Stands in for UploadClient; returns a fixed delta per upload.

    Records the elapsed seconds of every upload and the highest number of
    uploads observed in flight at once.
    """

    def __init__(self, delta: int = 5, delay: float = 0.0, error: Exception | None = None) -> None:
        self.delta = delta
        self.delay = delay
        self.error = error
        self.calls: list[tuple[Batch, float]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    async def upload(self, batch: Batch, elapsed_seconds: float) -> int:
        with self._lock:
            self.calls.append((batch, elapsed_seconds))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.delta
        finally:
            with self._lock:
                self.in_flight -= 1


class ManualTime:
    """Settable time source for SampleClock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return make_config()


@pytest.fixture
def manual_time() -> ManualTime:
    return ManualTime()


@pytest.fixture
def manual_clock(manual_time: ManualTime) -> SampleClock:
    return SampleClock(time_fn=manual_time)


@pytest.fixture
def events() -> list[StepCountEvent]:
    return []


@pytest.fixture
def walking_batch() -> Batch:
    return Batch.from_samples(walking_samples(TEST_CAPACITY), sequence=1)


@pytest.fixture
def resting_batch() -> Batch:
    return Batch.from_samples(resting_samples(TEST_CAPACITY), sequence=1)


@pytest.fixture
def mock_httpx_client() -> MagicMock:
    """Mock httpx.AsyncClient answering 200 {"steps": 7}."""
    client = MagicMock()
    response = MagicMock()
    response.status_code = 200
    response.json = MagicMock(return_value={"steps": 7})
    client.post = AsyncMock(return_value=response)
    return client


@pytest.fixture
def upload_client(mock_httpx_client: MagicMock) -> UploadClient:
    return UploadClient(
        endpoint=TEST_ENDPOINT,
        sampling_frequency_hz=100,
        batch_size=TEST_CAPACITY,
        device_label="test-phone",
        timeout_seconds=1.0,
        http_client=mock_httpx_client,
    )
