"""Sample sources that push accelerometer readings into the pipeline.

Available sources:
    SimulatedWalkSource — synthetic 3-axis signal alternating walking and rest
    ReplaySource        — replays a recorded sequence of vertical readings

Every source delivers samples from its own daemon thread, mirroring a
sensor driver calling back on a dedicated handler thread.
"""

from __future__ import annotations

import logging
import math
import random
import threading
from typing import Sequence

from src.stepcounter.base import SampleCallback, SampleSource

logger = logging.getLogger("stridesync.stepcounter.sources")

GRAVITY = 9.81


class _ThreadedSource(SampleSource):
    """Shared start/stop handling for thread-driven sources."""

    def __init__(self, sampling_frequency_hz: int) -> None:
        if sampling_frequency_hz <= 0:
            raise ValueError(
                f"Sampling frequency must be positive, got {sampling_frequency_hz}"
            )
        self._frequency = sampling_frequency_hz
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def sampling_frequency_hz(self) -> int:
        return self._frequency

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, callback: SampleCallback) -> None:
        if self.running:
            raise RuntimeError(f"{type(self).__name__} is already running")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(callback,),
            daemon=True,
            name=f"{self.SOURCE_ID}-sensor",
        )
        self._thread.start()
        logger.info("%s started at %d Hz", type(self).__name__, self._frequency)

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)
        self._thread = None
        logger.info("%s stopped", type(self).__name__)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the delivery thread to finish.  Returns True if it did."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self, callback: SampleCallback) -> None:
        raise NotImplementedError


class SimulatedWalkSource(_ThreadedSource):
    """Synthetic accelerometer alternating walking bouts and rest.

    While walking, the vertical axis oscillates around gravity at the step
    cadence; at rest only sensor noise remains.  The configured ``axis`` is
    the one forwarded to the pipeline.
    """

    SOURCE_ID = "simulated"

    def __init__(
        self,
        sampling_frequency_hz: int = 100,
        axis: int = 2,
        cadence_hz: float = 1.8,
        amplitude: float = 2.5,
        noise: float = 0.05,
        walk_seconds: float = 30.0,
        rest_seconds: float = 15.0,
        seed: int | None = None,
    ) -> None:
        super().__init__(sampling_frequency_hz)
        if axis not in (0, 1, 2):
            raise ValueError(f"Axis must be 0, 1 or 2, got {axis}")
        self._axis = axis
        self._cadence = cadence_hz
        self._amplitude = amplitude
        self._noise = noise
        self._walk_seconds = walk_seconds
        self._rest_seconds = rest_seconds
        self._rng = random.Random(seed)

    def reading(self, t: float) -> tuple[float, float, float]:
        """3-axis reading at ``t`` seconds since start."""
        cycle = self._walk_seconds + self._rest_seconds
        walking = cycle <= 0 or (t % cycle) < self._walk_seconds
        bounce = (
            self._amplitude * math.sin(2 * math.pi * self._cadence * t) if walking else 0.0
        )
        sway = 0.3 * bounce
        return (
            sway + self._rng.gauss(0, self._noise),
            0.1 * bounce + self._rng.gauss(0, self._noise),
            GRAVITY + bounce + self._rng.gauss(0, self._noise),
        )

    def _run(self, callback: SampleCallback) -> None:
        period = 1.0 / self._frequency
        n = 0
        while not self._stop_event.wait(period):
            callback(self.reading(n * period)[self._axis])
            n += 1


class ReplaySource(_ThreadedSource):
    """Replays recorded vertical readings, then goes quiet.

    With ``realtime=False`` samples are pushed back-to-back, which is how the
    tests drive the pipeline.
    """

    SOURCE_ID = "replay"

    def __init__(
        self,
        samples: Sequence[float],
        sampling_frequency_hz: int = 100,
        realtime: bool = False,
    ) -> None:
        super().__init__(sampling_frequency_hz)
        self._samples = [float(s) for s in samples]
        self._realtime = realtime

    def _run(self, callback: SampleCallback) -> None:
        period = 1.0 / self._frequency
        for value in self._samples:
            if self._stop_event.is_set():
                return
            if self._realtime and self._stop_event.wait(period):
                return
            callback(value)
        logger.debug("ReplaySource exhausted after %d samples", len(self._samples))


# Registry: settings.sensor_source → source class.  ReplaySource needs its
# recording and is always passed to create_pipeline explicitly.
SOURCE_REGISTRY: dict[str, type[SampleSource]] = {
    "simulated": SimulatedWalkSource,
}


def get_source(source_id: str) -> type[SampleSource]:
    """Return the source class for a given slug.

    Raises:
        KeyError: If the source_id is not registered.
    """
    if source_id not in SOURCE_REGISTRY:
        raise KeyError(
            f"No sample source registered for '{source_id}'. "
            f"Available: {sorted(SOURCE_REGISTRY)}"
        )
    return SOURCE_REGISTRY[source_id]
