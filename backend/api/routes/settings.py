"""
api/routes/settings.py
----------------------
Admin settings panel:

    GET /v1/admin/settings
    GET /v1/admin/settings/{key}
    PUT /v1/admin/settings/{key}      upsert; writes an audit log row (422 for an unknown user_id)
    GET /v1/admin/audit-logs?association_id=&limit=
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from api.deps import get_dal
from db.repositories.base import DataAccessLayer
from schemas.entities import AuditLog

router = APIRouter()


class SettingUpdate(BaseModel):
    value: str
    user_id: Optional[str] = None


@router.get("/settings", summary="All system settings")
def list_settings(dal: DataAccessLayer = Depends(get_dal)) -> dict[str, str]:
    return dal.get_all_system_settings()


@router.get("/settings/{key}", summary="One system setting")
def read_setting(key: str, dal: DataAccessLayer = Depends(get_dal)) -> dict:
    value = dal.get_system_setting(key)
    if value is None:
        raise HTTPException(status_code=404, detail=f"Setting '{key}' not found")
    return {"key": key, "value": value}


@router.put("/settings/{key}", summary="Create or overwrite a system setting")
def write_setting(
    key: str,
    body: SettingUpdate,
    request: Request,
    dal: DataAccessLayer = Depends(get_dal),
) -> dict:
    # audit_logs.user_id references profiles: reject before anything is written
    if body.user_id is not None and dal.get_profile_by_user_id(body.user_id) is None:
        raise HTTPException(status_code=422, detail=f"Unknown user '{body.user_id}'")

    old_value = dal.get_system_setting(key)
    dal.set_system_setting(key, body.value)
    dal.create_audit_log({
        "user_id":       body.user_id,
        "action":        "update" if old_value is not None else "create",
        "resource_type": "system_setting",
        "old_values":    {key: old_value} if old_value is not None else None,
        "new_values":    {key: body.value},
        "ip_address":    request.client.host if request.client else None,
        "user_agent":    request.headers.get("user-agent"),
    })
    return {"key": key, "value": body.value}


@router.get("/audit-logs", summary="Audit trail, newest first")
def list_audit_logs(
    association_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    dal: DataAccessLayer = Depends(get_dal),
) -> list[AuditLog]:
    return dal.get_audit_logs(association_id=association_id, limit=limit)
