"""
api/routes/health.py
--------------------
Health-check endpoint: used by load balancers, Docker health probes, etc.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from api.deps import get_dal_or_none
from db.data_access import detect_backend
from db.repositories.base import DataAccessLayer

router = APIRouter()


@router.get("/health", summary="Health check")
def health(dal: Optional[DataAccessLayer] = Depends(get_dal_or_none)) -> dict:
    """Always 200; the database part reports unhealthy instead of failing."""
    if dal is None:
        database = {"type": detect_backend(), "status": "unhealthy"}
    else:
        database = {"type": dal.get_adapter_type(), **dal.health_check()}
    return {
        "status":   "ok",
        "service":  "konbase-backend",
        "database": database,
    }
