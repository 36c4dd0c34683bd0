"""
api/routes/setup.py
-------------------
Endpoints behind the setup wizard:

    GET  /v1/setup/auto-detect      backend picked from configuration
    GET  /v1/setup/check-database   live connection check of that backend
    GET  /v1/setup/migrations       applied / pending versions (read-only)
    POST /v1/setup/migrations       apply pending migrations

Migration endpoints only make sense on PostgreSQL; on Redis they answer 400.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from db.connection import check_connection, get_connection_info
from db.data_access import detect_backend
from db.errors import MigrationError
from db.migrator import check_migrations_status, run_migrations
from db.redis_client import check_redis_connection, get_redis_connection_info

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_postgres() -> None:
    if detect_backend() != "postgresql":
        raise HTTPException(
            status_code=400,
            detail="Migrations only apply to the PostgreSQL backend",
        )


@router.get("/auto-detect", summary="Detect the configured backend")
def auto_detect() -> dict:
    backend = detect_backend()
    info = get_redis_connection_info() if backend == "redis" else get_connection_info()
    return {"type": backend, "connection": info}


@router.get("/check-database", summary="Test the database connection")
def check_database() -> dict:
    backend = detect_backend()
    if backend == "redis":
        result = check_redis_connection()
    else:
        result = check_connection()
    return {"type": backend, **result}


@router.get("/migrations", summary="Migration status")
def migration_status() -> dict:
    _require_postgres()
    status = check_migrations_status()
    return {
        "is_up_to_date": status.is_up_to_date,
        "applied":       status.applied,
        "pending":       status.pending,
    }


@router.post("/migrations", summary="Apply pending migrations")
def apply_migrations():
    _require_postgres()
    try:
        result = run_migrations()
    except MigrationError as exc:
        logger.error("Migration run aborted at %s: %s", exc.version, exc)
        return JSONResponse(
            status_code=500,
            content={
                "success":        False,
                "detail":         str(exc),
                "failed_version": exc.version,
                "applied":        exc.applied,
            },
        )
    return {"success": True, "applied": result.applied, "skipped": result.skipped}
