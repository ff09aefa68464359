"""Health check endpoint — public, no auth required."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.dependencies import AppSettings

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check(request: Request, settings: AppSettings) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also reports whether the step pipeline is running.
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    pipeline_state = pipeline.state.value if pipeline is not None else "unavailable"

    return {
        "status": "healthy" if pipeline is not None else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "pipeline": pipeline_state,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
