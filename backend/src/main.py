"""PartMatch Backend - Main FastAPI Application

Parts catalog reconciliation: match store inventory against supplier
catalogs, review the proposals, and learn rules from the decisions.

This module creates and configures the main FastAPI application, including:
- All API routers (catalog, jobs, review, rules, vendor actions)
- Middleware (request ID correlation, CORS)
- Exception handlers
- Health and observability endpoints
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings

# Observability
from observability.logging_config import configure_logging
from observability.middleware import RequestIDMiddleware
from observability.router import router as observability_router

# Domain Routers
from catalog.router import router as catalog_router
from jobs.router import router as jobs_router
from review.router import router as review_router
from rules.router import router as rules_router
from vendor_actions.router import router as vendor_actions_router

# Celery app must be configured before any task is enqueued
from workers.celery_app import celery_app  # noqa: F401

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("PartMatch API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    yield

    logger.info("PartMatch API shutting down...")


_docs_enabled = settings.ENVIRONMENT != "production"

app = FastAPI(
    title="PartMatch API",
    description="Parts catalog reconciliation: matching, review and rule learning",
    version="0.1.0",
    docs_url="/docs" if _docs_enabled else None,
    redoc_url="/redoc" if _docs_enabled else None,
    openapi_url="/openapi.json" if _docs_enabled else None,
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE CONFIGURATION
# =============================================================================

# Request ID Middleware (must be first for proper correlation)
app.add_middleware(RequestIDMiddleware)

ALLOWED_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:8080"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with field-level details."""
    logger.warning(
        f"Validation error on {request.method} {request.url.path}",
        extra={"errors": exc.errors()}
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(
    request: Request,
    exc: SQLAlchemyError
) -> JSONResponse:
    """Handle database errors.

    Logs the full error but returns a generic message to prevent
    information leakage.
    """
    logger.error(
        f"Database error on {request.method} {request.url.path}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "database_error",
            "message": "A database error occurred. Please try again later.",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Handle uncaught exceptions with a generic response; details are logged only."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

# Observability (health, metrics, ready)
app.include_router(observability_router)

app.include_router(catalog_router)
app.include_router(jobs_router)
app.include_router(review_router)
app.include_router(rules_router)
app.include_router(vendor_actions_router)


# =============================================================================
# ROOT ENDPOINTS
# =============================================================================

@app.get("/", include_in_schema=False)
async def root() -> dict[str, Any]:
    """Root endpoint - API information."""
    return {
        "name": "PartMatch API",
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs" if _docs_enabled else None,
    }


@app.get("/api/v1", include_in_schema=False)
async def api_root() -> dict[str, Any]:
    """API v1 root endpoint."""
    return {
        "version": "v1",
        "status": "active",
        "endpoints": {
            "catalog": "/api/v1/catalog",
            "jobs": "/api/v1/jobs",
            "review": "/api/v1/review",
            "rules": "/api/v1/rules",
            "vendor_actions": "/api/v1/vendor-actions",
        }
    }


def create_app() -> FastAPI:
    """Application factory for tests and ASGI servers."""
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
