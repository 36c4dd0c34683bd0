"""
db/data_access.py
------------------
Backend selection for the data-access layer.

Usage:
    from db.data_access import get_data_access

    dal = get_data_access()
    assoc = dal.create_association({"name": "Otaku Club"})

Auto-detection: REDIS_URL set → RedisDataAccess, otherwise
PostgresDataAccess.  The backend is fixed when the instance is built;
reset_data_access() drops the singleton so the next call re-detects.
"""

from __future__ import annotations

import logging

import config
from db.repositories.base import BackendType, DataAccessLayer

logger = logging.getLogger(__name__)

# Module-level singleton; initialised lazily on first call to get_data_access()
_instance: DataAccessLayer | None = None


def detect_backend() -> BackendType:
    return "redis" if config.REDIS_URL else "postgresql"


def create_data_access(db_type: BackendType | None = None) -> DataAccessLayer:
    """Build a new data-access instance for ``db_type`` (auto-detected when None)."""
    db_type = db_type or detect_backend()
    if db_type == "redis":
        from db.repositories.redis_repo import RedisDataAccess
        return RedisDataAccess()
    if db_type == "postgresql":
        from db.repositories.postgres_repo import PostgresDataAccess
        return PostgresDataAccess()
    raise ValueError(f"Unknown database type: {db_type!r}")


def get_data_access() -> DataAccessLayer:
    """Return the process-wide data-access instance, creating it on first call."""
    global _instance
    if _instance is None:
        _instance = create_data_access()
        logger.info("Data access layer initialised (%s)", _instance.get_adapter_type())
    return _instance


def reset_data_access() -> None:
    global _instance
    _instance = None
