"""
api/exceptions.py
-----------------
Global exception handlers: data-layer errors mapped to HTTP status codes,
no stack traces in responses.
"""

from __future__ import annotations

import logging

import psycopg2
import psycopg2.errors
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from db.errors import ConfigurationError, ForbiddenError, UniqueViolationError

logger = logging.getLogger(__name__)


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
    )


async def _forbidden_handler(_request: Request, exc: ForbiddenError) -> JSONResponse:
    logger.info("Access denied: %s", exc)
    return JSONResponse(
        status_code=403,
        content={"detail": "Forbidden", "success": False},
    )


async def _conflict_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unique constraint violation: %s", exc)
    return JSONResponse(
        status_code=409,
        content={"detail": "Record already exists", "success": False},
    )


async def _integrity_error_handler(_request: Request, exc: psycopg2.IntegrityError) -> JSONResponse:
    logger.error("Database constraint violation: %s", exc)
    return JSONResponse(
        status_code=422,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _configuration_error_handler(
    _request: Request, exc: ConfigurationError
) -> JSONResponse:
    logger.error("Database not configured: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Database not configured", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ForbiddenError, _forbidden_handler)  # type: ignore[arg-type]
    app.add_exception_handler(UniqueViolationError, _conflict_handler)
    app.add_exception_handler(psycopg2.errors.UniqueViolation, _conflict_handler)
    # Foreign-key, NOT NULL and CHECK violations
    app.add_exception_handler(psycopg2.IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
