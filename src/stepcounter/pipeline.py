"""Sensor-to-step-count pipeline.

Wires the components together and owns the pipeline lifecycle:

1. The sample source calls ``on_sample`` from its own thread
2. SampleBuffer accumulates readings and flushes a Batch when full
3. SampleClock stamps the batch with the seconds since the previous flush
4. The batch is handed to a worker event loop (ownership transfer only)
5. ActivityGate discards batches without significant activity
6. UploadClient posts the rest, at most ``max_concurrent_uploads`` at a time
7. StepAggregator applies the returned delta and notifies subscribers

Only buffer insertion happens on the sensor thread.  Upload failures drop
the batch and go to the error sink; they never reach the sensor thread.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from src.config import Settings
from src.stepcounter.activity_gate import ActivityGate
from src.stepcounter.aggregator import StepAggregator
from src.stepcounter.base import (
    AggregateState,
    Batch,
    Sample,
    SampleSource,
    StepCountEvent,
    StepCountObserver,
    UploadError,
    check_batch_size,
)
from src.stepcounter.buffer import SampleBuffer
from src.stepcounter.clock import SampleClock
from src.stepcounter.config_loader import PipelineConfig, get_pipeline_config
from src.stepcounter.sources import get_source
from src.stepcounter.upload_client import UploadClient

logger = logging.getLogger("stridesync.stepcounter.pipeline")

ErrorSink = Callable[[UploadError, Batch], None]


class PipelineState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class PipelineStateError(RuntimeError):
    """Raised on an invalid lifecycle transition (e.g. starting twice)."""


@dataclass
class PipelineStats:
    """Counters for the current pipeline run.

    Attributes:
        batches_flushed:   Batches produced by the buffer.
        batches_inactive:  Batches discarded by the activity gate.
        uploads_succeeded: Uploads that returned a delta.
        uploads_failed:    Uploads dropped on transport/protocol errors.
        steps_applied:     Sum of all applied deltas (ignores resets).
        in_flight:         Batches handed off but not yet finished.
        buffered_samples:  Samples waiting for the next flush.
    """

    batches_flushed: int = 0
    batches_inactive: int = 0
    uploads_succeeded: int = 0
    uploads_failed: int = 0
    steps_applied: int = 0
    in_flight: int = 0
    buffered_samples: int = 0


def log_upload_error(error: UploadError, batch: Batch) -> None:
    """Default error sink: log the dropped batch."""
    logger.warning(
        "Dropped batch #%d (%d samples): %s", batch.sequence, len(batch), error
    )


class StepPipeline:
    """Running/stopped pipeline turning sensor samples into a step count.

    Usage::

        pipeline = StepPipeline(source=SimulatedWalkSource(), upload_client=client)
        pipeline.subscribe(lambda event: print(event.steps))
        pipeline.start()
        ...
        pipeline.reset()
        pipeline.stop()
    """

    def __init__(
        self,
        upload_client: UploadClient,
        source: SampleSource | None = None,
        config: PipelineConfig | None = None,
        error_sink: ErrorSink | None = None,
        clock: SampleClock | None = None,
    ) -> None:
        """Initialize the pipeline (stopped).

        Args:
            upload_client: Client for the step-estimation service.
            source:        Sample source started/stopped with the pipeline.  When
                           None, samples must be pushed through ``on_sample``.
            config:        Pipeline tuning.  Uses the global config by default.
            error_sink:    Callback(UploadError, Batch) for dropped uploads.
            clock:         Flush clock (injectable for tests).
        """
        self._config = config or get_pipeline_config()
        self._client = upload_client
        self._source = source
        self._error_sink = error_sink or log_upload_error
        self._clock = clock or SampleClock()

        self._buffer = SampleBuffer(self._config.buffer_capacity)
        self._gate = ActivityGate(self._config.activity_threshold, self._config.deviation)
        self._aggregator = StepAggregator(observer=self._publish)

        self._observers: list[StepCountObserver] = []
        self._observers_lock = threading.Lock()

        self._state = PipelineState.STOPPED
        self._lifecycle_lock = threading.Lock()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None
        self._semaphore: asyncio.Semaphore | None = None
        self._inflight: set[concurrent.futures.Future] = set()
        self._inflight_lock = threading.Lock()

        self._stats = PipelineStats()
        self._stats_lock = threading.Lock()

        if source is not None and source.sampling_frequency_hz != self._config.sampling_frequency_hz:
            logger.warning(
                "Source runs at %d Hz but uploads report %d Hz",
                source.sampling_frequency_hz,
                self._config.sampling_frequency_hz,
            )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is PipelineState.RUNNING

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def steps(self) -> int:
        return self._aggregator.cumulative_steps

    def snapshot(self) -> AggregateState:
        return self._aggregator.snapshot()

    def stats(self) -> PipelineStats:
        with self._stats_lock:
            stats = replace(self._stats)
        with self._inflight_lock:
            stats.in_flight = len(self._inflight)
        stats.buffered_samples = self._buffer.pending
        return stats

    # ------------------------------------------------------------------
    # Notifications and control
    # ------------------------------------------------------------------

    def subscribe(self, observer: StepCountObserver) -> Callable[[], None]:
        """Register a step-count observer.

        Returns:
            A callable that unsubscribes the observer.
        """
        with self._observers_lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._observers_lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def reset(self) -> None:
        """Zero the cumulative count.  Valid whether running or stopped."""
        self._aggregator.reset()

    def _publish(self, event: StepCountEvent) -> None:
        with self._observers_lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception("Step count observer %r failed", observer)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Transition STOPPED → RUNNING with a fresh AggregateState.

        Raises:
            PipelineStateError: If the pipeline is already running.
        """
        with self._lifecycle_lock:
            if self._state is PipelineState.RUNNING:
                raise PipelineStateError("Pipeline is already running")

            self._aggregator = StepAggregator(observer=self._publish)
            with self._stats_lock:
                self._stats = PipelineStats()
            self._buffer.clear()
            self._clock.start()

            self._loop = asyncio.new_event_loop()
            self._semaphore = asyncio.Semaphore(self._config.max_concurrent_uploads)
            self._loop_thread = threading.Thread(
                target=self._run_loop,
                args=(self._loop,),
                daemon=True,
                name="step-upload-loop",
            )
            self._loop_thread.start()

            with self._inflight_lock:
                self._state = PipelineState.RUNNING

            if self._source is not None:
                self._source.start(self.on_sample)

        logger.info(
            "Pipeline started: capacity=%d, %d Hz, threshold=%.2f, max_concurrent=%d",
            self._config.buffer_capacity,
            self._config.sampling_frequency_hz,
            self._config.activity_threshold,
            self._config.max_concurrent_uploads,
        )

    def stop(self) -> None:
        """Transition RUNNING → STOPPED.

        Unregisters the source, discards buffered samples, cancels in-flight
        uploads and shuts down the worker loop.  The last AggregateState stays
        readable (and resettable) until the next start.  No-op when stopped.
        """
        with self._lifecycle_lock:
            if self._state is PipelineState.STOPPED:
                return

            with self._inflight_lock:
                self._state = PipelineState.STOPPED
                pending = list(self._inflight)

            if self._source is not None:
                self._source.stop()
            dropped = self._buffer.clear()

            for future in pending:
                future.cancel()

            loop, thread = self._loop, self._loop_thread
            self._loop = None
            self._loop_thread = None
            self._semaphore = None
            if loop is not None:
                loop.call_soon_threadsafe(loop.stop)
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=5.0)

        logger.info(
            "Pipeline stopped: %d buffered samples discarded, %d uploads abandoned",
            dropped,
            len(pending),
        )

    def __enter__(self) -> StepPipeline:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    # ------------------------------------------------------------------
    # Hot path
    # ------------------------------------------------------------------

    def on_sample(self, sample: Sample) -> None:
        """Sensor callback: buffer one sample, hand off a batch when full.

        Samples that arrive while stopped are ignored.
        """
        if self._state is not PipelineState.RUNNING:
            return
        batch = self._buffer.ingest(sample)
        if batch is None:
            return
        elapsed = self._clock.mark()
        self.submit(batch, elapsed)

    def submit(
        self, batch: Batch, elapsed_seconds: float
    ) -> concurrent.futures.Future | None:
        """Hand a flushed batch to the worker loop without waiting for it.

        Args:
            batch:           A batch of exactly ``buffer_capacity`` samples.
            elapsed_seconds: Seconds since the previous flush.

        Returns:
            A future resolving to the applied delta, or None if stopped.

        Raises:
            BufferInvariantViolation: If the batch has the wrong length.
        """
        check_batch_size(batch, self._config.buffer_capacity)

        with self._inflight_lock:
            if self._state is not PipelineState.RUNNING or self._loop is None:
                logger.debug("Pipeline stopped; batch #%d ignored", batch.sequence)
                return None
            with self._stats_lock:
                self._stats.batches_flushed += 1
            future = asyncio.run_coroutine_threadsafe(
                self._process(batch, elapsed_seconds, self._aggregator, self._semaphore),
                self._loop,
            )
            self._inflight.add(future)

        future.add_done_callback(self._on_done)
        return future

    def drain(self, timeout: float | None = None) -> bool:
        """Block until every in-flight batch has finished.

        Returns:
            True if nothing is left in flight.
        """
        with self._inflight_lock:
            pending = list(self._inflight)
        if not pending:
            return True
        _, not_done = concurrent.futures.wait(pending, timeout=timeout)
        return not not_done

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    async def _process(
        self,
        batch: Batch,
        elapsed_seconds: float,
        aggregator: StepAggregator,
        semaphore: asyncio.Semaphore,
    ) -> int:
        if not self._gate.classify(batch):
            with self._stats_lock:
                self._stats.batches_inactive += 1
            logger.debug("Batch #%d shows no activity; not uploaded", batch.sequence)
            return 0

        async with semaphore:
            try:
                delta = await self._client.upload(batch, elapsed_seconds)
            except UploadError as exc:
                with self._stats_lock:
                    self._stats.uploads_failed += 1
                self._report(exc, batch)
                return 0

        with self._stats_lock:
            self._stats.uploads_succeeded += 1
            self._stats.steps_applied += delta
        aggregator.apply_delta(delta)
        return delta

    def _report(self, error: UploadError, batch: Batch) -> None:
        try:
            self._error_sink(error, batch)
        except Exception:
            logger.exception("Error sink failed while reporting batch #%d", batch.sequence)

    def _on_done(self, future: concurrent.futures.Future) -> None:
        with self._inflight_lock:
            self._inflight.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Unexpected failure processing batch: %r", exc)


def create_pipeline(
    settings: Settings,
    config: PipelineConfig | None = None,
    source: SampleSource | None = None,
) -> StepPipeline:
    """Build a pipeline from application settings.

    Args:
        settings: Environment settings (endpoint, device label, sensor source).
        config:   Pipeline tuning.  Uses the global config by default.
        source:   Explicit source; otherwise built from ``settings.sensor_source``.
    """
    config = config or get_pipeline_config()

    client = UploadClient(
        endpoint=settings.upload_endpoint,
        sampling_frequency_hz=config.sampling_frequency_hz,
        batch_size=config.buffer_capacity,
        device_label=settings.device_label,
        timeout_seconds=settings.upload_timeout_seconds or config.upload_timeout_seconds,
        success_status=config.success_status,
    )

    if source is None and settings.sensor_source != "none":
        source_cls = get_source(settings.sensor_source)
        source = source_cls(
            sampling_frequency_hz=config.sampling_frequency_hz,
            axis=config.sensor_axis,
        )

    return StepPipeline(upload_client=client, source=source, config=config)
