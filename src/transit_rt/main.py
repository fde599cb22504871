"""FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from transit_rt.config import get_settings
from transit_rt.errors import FeedError
from transit_rt.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from transit_rt.routers.feeds import router as feeds_router
from transit_rt.services.gtfs_rt.pipeline import get_ingestor

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()
    settings = get_settings()
    logger.info(
        "Starting transit realtime feed service",
        differential_mode=settings.differential_mode,
        enforce_required_fields=settings.enforce_required_fields,
    )

    yield

    logger.info("Shutting down transit realtime feed service")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Decodes, validates and merges GTFS-realtime feed messages and "
            "serves the resulting entity state"
        ),
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id=request_id, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        clear_request_context()
        return response

    # Include routers
    app.include_router(feeds_router)

    # Health endpoint
    @app.get("/health", tags=["meta"])
    async def health_check() -> dict[str, Any]:
        """Health check endpoint returning application status."""
        settings = get_settings()
        missing_env = settings.missing_required_env()
        ingest_status = get_ingestor().get_status()

        issues: list[str] = []
        if missing_env:
            issues.append("Missing required environment variables: " + ", ".join(missing_env))

        return {
            "service": settings.app_name,
            "status": "unhealthy" if missing_env else "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "ingest": {
                    "ingestCount": ingest_status["ingest_count"],
                    "lastIngestAt": ingest_status["last_ingest_at"],
                    "sources": ingest_status["sources"],
                },
                "differentialMode": settings.differential_mode,
            },
            "issues": issues,
        }

    # Feed errors that escape a router
    @app.exception_handler(FeedError)
    async def feed_error_handler(request: Request, exc: FeedError) -> JSONResponse:
        logger.warning(
            "Feed error",
            error=str(exc),
            entity_id=exc.entity_id,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=422,
            content={
                "error": type(exc).__name__,
                "message": str(exc),
                "entity_id": exc.entity_id,
            },
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


app = create_app()
