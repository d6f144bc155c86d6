"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from study_assistant.api.v1.router import api_router
from study_assistant.core.clients import build_ai_components
from study_assistant.core.config import get_settings
from study_assistant.core.database import init_db
from study_assistant.observability import RequestLoggingMiddleware, build_metrics_backend

settings = get_settings()
logger = logging.getLogger(__name__)

metrics_backend = build_metrics_backend(settings.metrics_enabled)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan events."""
    # Startup
    await init_db()
    app.state.ai = build_ai_components(settings, metrics_backend)
    logger.info(f"{settings.app_name} {settings.app_version} started")
    yield
    # Shutdown
    await app.state.ai.aclose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

# CORS middleware
# Note: When allow_credentials=True, allow_origins cannot be ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware, metrics=metrics_backend)

# Include API router
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


@app.get("/metrics", include_in_schema=False)
async def metrics() -> PlainTextResponse:
    """Prometheus-style metrics endpoint."""
    return PlainTextResponse(metrics_backend.render_prometheus())
