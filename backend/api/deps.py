"""
api/deps.py
-----------
FastAPI dependencies shared by the routers.  Tests swap them through
``app.dependency_overrides``.
"""

from __future__ import annotations

import logging

from fastapi import Header

from db.data_access import get_data_access
from db.repositories.base import DataAccessLayer

logger = logging.getLogger(__name__)


def get_dal() -> DataAccessLayer:
    return get_data_access()


def get_dal_or_none() -> DataAccessLayer | None:
    """For the health endpoint: None when the backend cannot even be reached."""
    try:
        return get_data_access()
    except Exception as exc:
        logger.error("Data access unavailable: %s", exc)
        return None


def get_profile_id(x_profile_id: str = Header(..., alias="X-Profile-Id")) -> str:
    """Caller's profile id; authentication happens upstream of this service."""
    return x_profile_id
