"""Step count and pipeline control endpoints: read, reset, start/stop, push samples."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from src.dependencies import Pipeline
from src.models.base import ErrorDetail
from src.models.steps import (
    PipelineStatsRead,
    PipelineStatusRead,
    SampleBatchAccepted,
    SampleBatchCreate,
    StepCountRead,
)
from src.stepcounter.pipeline import PipelineStateError, StepPipeline

router = APIRouter(tags=["steps"])

_CONFLICT = {409: {"model": ErrorDetail}}
logger = logging.getLogger("stridesync.api.steps")


def _status(pipeline: StepPipeline) -> PipelineStatusRead:
    config = pipeline.config
    return PipelineStatusRead(
        state=pipeline.state.value,
        steps=pipeline.steps,
        buffer_capacity=config.buffer_capacity,
        sampling_frequency_hz=config.sampling_frequency_hz,
        activity_threshold=config.activity_threshold,
        max_concurrent_uploads=config.max_concurrent_uploads,
        stats=PipelineStatsRead.model_validate(pipeline.stats()),
    )


def _step_count(pipeline: StepPipeline) -> StepCountRead:
    state = pipeline.snapshot()
    return StepCountRead(steps=state.cumulative_steps, last_upload_at=state.last_upload_at)


# ---------- Step count ----------

@router.get("/steps", response_model=StepCountRead)
async def get_steps(pipeline: Pipeline) -> Any:
    return _step_count(pipeline)


@router.post("/steps/reset", response_model=StepCountRead)
async def reset_steps(pipeline: Pipeline) -> Any:
    pipeline.reset()
    logger.info("Step count reset via API")
    return _step_count(pipeline)


# ---------- Pipeline ----------

@router.get("/pipeline", response_model=PipelineStatusRead)
async def get_pipeline_status(pipeline: Pipeline) -> Any:
    return _status(pipeline)


@router.post("/pipeline/start", response_model=PipelineStatusRead, responses=_CONFLICT)
def start_pipeline(pipeline: Pipeline) -> Any:
    try:
        pipeline.start()
    except PipelineStateError as exc:
        logger.warning("Start rejected: %s", exc)
        raise HTTPException(status_code=409, detail=str(exc))
    return _status(pipeline)


@router.post("/pipeline/stop", response_model=PipelineStatusRead, responses=_CONFLICT)
def stop_pipeline(pipeline: Pipeline) -> Any:
    if not pipeline.running:
        raise HTTPException(status_code=409, detail="Pipeline is not running")
    pipeline.stop()
    return _status(pipeline)


@router.post(
    "/pipeline/samples",
    response_model=SampleBatchAccepted,
    status_code=202,
    responses=_CONFLICT,
)
async def push_samples(pipeline: Pipeline, body: SampleBatchCreate) -> Any:
    """Feed externally captured samples, e.g. from a phone posting its sensor stream."""
    if not pipeline.running:
        raise HTTPException(status_code=409, detail="Pipeline is not running")
    for sample in body.samples:
        pipeline.on_sample(sample)
    stats = pipeline.stats()
    return SampleBatchAccepted(
        accepted=len(body.samples), buffered_samples=stats.buffered_samples
    )
