"""Stride Sync step-count pipeline.

This package buffers accelerometer samples, discards batches without
significant activity, uploads the rest to a remote step-estimation service,
and keeps the cumulative step count.

Core modules:
    base           — Batch, wire messages, AggregateState, errors, SampleSource ABC
    clock          — Flush-to-flush elapsed time
    buffer         — Thread-safe flush-on-full SampleBuffer
    activity_gate  — Standard-deviation significance gate
    upload_client  — httpx client for the step-estimation service
    aggregator     — Cumulative step count and change notifications
    pipeline       — Lifecycle, worker loop and wiring
    sources        — Simulated and replayed sample sources
    config_loader  — Load/validate/hot-reload pipeline_config.yaml
"""

from src.stepcounter.activity_gate import ActivityGate
from src.stepcounter.aggregator import StepAggregator
from src.stepcounter.base import (
    AggregateState,
    Batch,
    BufferInvariantViolation,
    ProtocolError,
    SampleSource,
    StepCountEvent,
    TransportError,
    UploadError,
    UploadRequest,
    UploadResponse,
)
from src.stepcounter.buffer import SampleBuffer
from src.stepcounter.clock import SampleClock
from src.stepcounter.config_loader import PipelineConfig, get_pipeline_config
from src.stepcounter.pipeline import PipelineState, StepPipeline, create_pipeline
from src.stepcounter.upload_client import UploadClient

__all__ = [
    "ActivityGate",
    "AggregateState",
    "Batch",
    "BufferInvariantViolation",
    "PipelineConfig",
    "PipelineState",
    "ProtocolError",
    "SampleBuffer",
    "SampleClock",
    "SampleSource",
    "StepAggregator",
    "StepCountEvent",
    "StepPipeline",
    "TransportError",
    "UploadClient",
    "UploadError",
    "UploadRequest",
    "UploadResponse",
    "create_pipeline",
    "get_pipeline_config",
]
