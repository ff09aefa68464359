"""Stride Sync API — FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from src.config import get_settings
from src.routers import health, steps
from src.stepcounter.pipeline import create_pipeline

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("stridesync")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logging.getLogger("stridesync").setLevel(settings.log_level.upper())
    logger.info(
        "Starting Stride Sync API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    pipeline = create_pipeline(settings)
    app.state.pipeline = pipeline
    if settings.autostart:
        await run_in_threadpool(pipeline.start)
    yield
    await run_in_threadpool(pipeline.stop)
    logger.info("Stride Sync API shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Stride Sync API",
        description=(
            "Accelerometer step counting — buffers sensor samples, gates on "
            "activity, and syncs step counts with a remote estimation service."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix — always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(steps.router, prefix="/api/v1")

    return app


app = create_app()
