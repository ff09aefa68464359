"""Load, validate, and hot-reload the pipeline tuning configuration.

The config lives in ``pipeline_config.yaml`` alongside this module.  It is
loaded once and cached.  Call ``reload_pipeline_config()`` to re-read it from
disk; pipelines pick up the new values the next time they start.

Usage::

    from src.stepcounter.config_loader import get_pipeline_config

    config = get_pipeline_config()
    config.buffer_capacity      # 1024
    config.activity_threshold   # 0.5
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

import yaml

from src.stepcounter.activity_gate import DEVIATIONS

logger = logging.getLogger("stridesync.stepcounter.config")

_CONFIG_PATH = Path(__file__).parent / "pipeline_config.yaml"


@dataclass
class PipelineConfig:
    """Complete, validated pipeline configuration.

    Attributes:
        version:                Config schema version string.
        buffer_capacity:        Samples per batch.
        sampling_frequency_hz:  Target sensor rate.
        sensor_axis:            Accelerometer axis treated as vertical.
        activity_threshold:     Minimum stdev for an upload.
        deviation:              Deviation formula name.
        max_concurrent_uploads: Upper bound on in-flight uploads.
        upload_timeout_seconds: Per-request timeout.
        success_status:         HTTP statuses treated as success.
    """

    version: str
    buffer_capacity: int
    sampling_frequency_hz: int
    sensor_axis: int
    activity_threshold: float
    deviation: str
    max_concurrent_uploads: int
    upload_timeout_seconds: float
    success_status: range

    @property
    def batch_duration_seconds(self) -> float:
        """Nominal wall time covered by one batch."""
        return self.buffer_capacity / self.sampling_frequency_hz


class ConfigValidationError(ValueError):
    """Raised when pipeline_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> PipelineConfig:
    """Validate the raw YAML dict and construct a PipelineConfig.

    Every problem is collected before raising so one run reports them all.

    Raises:
        ConfigValidationError: If any value is missing or out of range.
    """
    errors: list[str] = []

    def _number(section: dict, key: str, path: str, default, cast):
        value = section.get(key, default)
        if isinstance(value, bool):
            errors.append(f"{path} must be a number, got {value!r}")
            return default
        try:
            return cast(value)
        except (TypeError, ValueError):
            errors.append(f"{path} must be a number, got {value!r}")
            return default

    version = str(raw.get("version", "1.0"))

    # ── Buffer ──
    buffer_raw = raw.get("buffer") or {}
    capacity = _number(buffer_raw, "capacity", "buffer.capacity", 1024, int)
    if capacity < 2:
        errors.append(f"buffer.capacity = {capacity} must be at least 2")

    # ── Sensor ──
    sensor_raw = raw.get("sensor") or {}
    frequency = _number(
        sensor_raw, "sampling_frequency_hz", "sensor.sampling_frequency_hz", 100, int
    )
    if frequency <= 0:
        errors.append(f"sensor.sampling_frequency_hz = {frequency} must be positive")
    axis = _number(sensor_raw, "axis", "sensor.axis", 2, int)
    if axis not in (0, 1, 2):
        errors.append(f"sensor.axis = {axis} must be 0, 1 or 2")

    # ── Activity gate ──
    gate_raw = raw.get("activity_gate") or {}
    threshold = _number(gate_raw, "threshold", "activity_gate.threshold", 0.5, float)
    if threshold < 0:
        errors.append(f"activity_gate.threshold = {threshold} must be >= 0")
    deviation = str(gate_raw.get("deviation", "sample"))
    if deviation not in DEVIATIONS:
        errors.append(
            f"activity_gate.deviation = {deviation!r} is not one of {sorted(DEVIATIONS)}"
        )

    # ── Upload ──
    upload_raw = raw.get("upload") or {}
    max_concurrent = _number(upload_raw, "max_concurrent", "upload.max_concurrent", 4, int)
    if max_concurrent < 1:
        errors.append(f"upload.max_concurrent = {max_concurrent} must be >= 1")
    timeout = _number(upload_raw, "timeout_seconds", "upload.timeout_seconds", 10.0, float)
    if timeout <= 0:
        errors.append(f"upload.timeout_seconds = {timeout} must be positive")
    status_min = _number(
        upload_raw, "success_status_min", "upload.success_status_min", 200, int
    )
    status_max = _number(
        upload_raw, "success_status_max", "upload.success_status_max", 299, int
    )
    if not (100 <= status_min <= status_max <= 599):
        errors.append(
            f"upload success status range {status_min}–{status_max} is not a valid HTTP range"
        )

    if errors:
        raise ConfigValidationError(
            f"pipeline_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return PipelineConfig(
        version=version,
        buffer_capacity=capacity,
        sampling_frequency_hz=frequency,
        sensor_axis=axis,
        activity_threshold=threshold,
        deviation=deviation,
        max_concurrent_uploads=max_concurrent,
        upload_timeout_seconds=timeout,
        success_status=range(status_min, status_max + 1),
    )


def load_pipeline_config(path: Path | None = None) -> PipelineConfig:
    """Load and validate the pipeline config from disk.

    Args:
        path: Override path to YAML. Uses the bundled pipeline_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded pipeline config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: PipelineConfig | None = None
_config_lock = threading.Lock()


def get_pipeline_config() -> PipelineConfig:
    """Return the global PipelineConfig singleton, loading it on first call."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_pipeline_config()
    return _config


def reload_pipeline_config(path: Path | None = None) -> PipelineConfig:
    """Reload the config from disk and replace the global singleton.

    If validation fails the old config is retained and the error re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_pipeline_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded pipeline config: %s → %s", old_version, new_config.version)
    return new_config
