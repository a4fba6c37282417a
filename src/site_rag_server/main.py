"""
Site RAG Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Deterministic startup
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from .config import settings
from .core.errors import request_validation_exception_handler, unhandled_exception_handler
from .core.logging import configure_logging
from .db import async_engine

from .api import (
    ask_routes,
    hive_bot_routes,
    ingest_routes,
    guardrail_routes,
    health_routes,
)
from .api.dependencies import get_guardrails


logger = logging.getLogger("rag.app")


async def _rate_limit_cleanup_loop(interval: float) -> None:
    """
    Periodically evict idle rate-limit entries and stale telemetry.
    """
    guardrails = get_guardrails()
    while True:
        await asyncio.sleep(interval)
        try:
            guardrails.rate_limiter.cleanup()
            guardrails.telemetry.cleanup()
        except Exception:
            logger.exception("Guardrail cleanup failed")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory pattern allows:
    - Clean test instantiation
    - Isolated app instances for integration tests
    - Controlled dependency overrides in pytest

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    configure_logging()

    app = FastAPI(
        title="site-rag-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(ask_routes.router)
    app.include_router(hive_bot_routes.router)
    app.include_router(ingest_routes.router)
    app.include_router(guardrail_routes.router)

    cleanup_task: Optional[asyncio.Task] = None

    # --------------------------------------------------------------
    # Startup Validation Hook
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup_validation() -> None:
        """
        Fail-fast validation at application startup.

        The Gemini key is required for every non-chitchat answer and for
        ingestion, so a missing key stops the server before it serves.
        """
        nonlocal cleanup_task
        logger.info("Starting site-rag-server")

        if not settings.google_api_key.get_secret_value():
            raise RuntimeError("GOOGLE_API_KEY is not configured")

        if not settings.admin_api_key:
            logger.warning("ADMIN_API_KEY is not set; admin endpoints are disabled")

        cleanup_task = asyncio.create_task(
            _rate_limit_cleanup_loop(settings.rate_limit_cleanup_interval)
        )

        logger.info("Configuration validated successfully")

    # --------------------------------------------------------------
    # Shutdown Hook
    # --------------------------------------------------------------

    @app.on_event("shutdown")
    async def _shutdown_cleanup() -> None:
        """
        Stop the guardrail cleanup task and release pooled connections.
        """
        logger.info("Shutting down site-rag-server")

        if cleanup_task is not None:
            cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleanup_task

        await async_engine.dispose()

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
