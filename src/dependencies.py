"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.config import Settings, get_settings
from src.stepcounter.pipeline import StepPipeline


def get_pipeline(request: Request) -> StepPipeline:
    """Return the pipeline created by the application lifespan."""
    pipeline: StepPipeline | None = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Step pipeline not initialised")
    return pipeline


# Annotated shortcuts for route signatures
Pipeline = Annotated[StepPipeline, Depends(get_pipeline)]
AppSettings = Annotated[Settings, Depends(get_settings)]
