"""AMS planning service FastAPI application entry point.

Configures the FastAPI app with:
- Request ID, security header and CORS middleware
- Lifespan events for logging and the submission journal database
- Route registration under /api/v1
- OpenAPI documentation at /docs (debug mode only)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ams.api.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from ams.api.routes import audit_plans, checklists, findings, health, scope
from ams.api.version import API_VERSION
from ams.backend.audits import AuditNotFoundError
from ams.core.config import get_settings
from ams.core.database import create_engine
from ams.core.errors import SubmissionError, extract_error_message
from ams.core.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and, when enabled, the journal connection pool."""
    settings = get_settings()
    configure_logging(settings)

    engine = None
    app.state.db_session_factory = None
    if settings.journal_enabled:
        engine, session_factory = create_engine(settings)
        app.state.db_engine = engine
        app.state.db_session_factory = session_factory
        logger.info("Submission journal connection pool initialized")
    else:
        logger.info("Submission journal disabled; failed writes cannot be retried")

    logger.info("Using AMS backend at %s", settings.backend_api_url)

    yield

    if engine is not None:
        await engine.dispose()
    logger.info("All connections closed")


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Audit plan wizard and review workflow for the AMS backend",
        version=API_VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Middleware is applied in reverse order (last added = first executed).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "Accept"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(health.router)
    app.include_router(audit_plans.router)
    app.include_router(scope.router)
    app.include_router(checklists.router)
    app.include_router(findings.router)

    # -- Error Handlers ---
    @app.exception_handler(SubmissionError)
    async def submission_error_handler(request: Request, exc: SubmissionError) -> JSONResponse:
        request_id = _request_id(request)
        logger.info("Submission rejected at step %d [%s]: %s", exc.step, request_id, exc)
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc), "step": exc.step, "request_id": request_id},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        request_id = _request_id(request)
        logger.warning("Validation error [%s]: %s", request_id, exc)
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc), "request_id": request_id},
        )

    @app.exception_handler(AuditNotFoundError)
    async def not_found_handler(request: Request, exc: AuditNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": str(exc), "request_id": _request_id(request)},
        )

    @app.exception_handler(httpx.HTTPError)
    async def backend_error_handler(request: Request, exc: httpx.HTTPError) -> JSONResponse:
        request_id = _request_id(request)
        logger.warning("AMS backend call failed [%s]: %s", request_id, exc)
        return JSONResponse(
            status_code=502,
            content={
                "detail": extract_error_message(exc, "AMS backend request failed"),
                "request_id": request_id,
            },
        )

    @app.exception_handler(Exception)  # Intentionally broad: top-level global error handler
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = _request_id(request)
        logger.exception("Unhandled error [%s]: %s", request_id, exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request_id},
        )

    return app


# Application instance used by uvicorn
app = create_app()
