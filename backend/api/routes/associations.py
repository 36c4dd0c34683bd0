"""
api/routes/associations.py
--------------------------
    POST /v1/associations
    GET  /v1/associations/{association_id}
    GET  /v1/associations/{association_id}/conventions    members only
    POST /v1/associations/{association_id}/conventions    manager or above
    GET  /v1/associations/{association_id}/members        members only
    POST /v1/associations/{association_id}/members        manager or above
    DELETE /v1/associations/{association_id}/members/{profile_id}
                                   manager or above, or the member itself

Membership checks go through db.rls; the caller's profile id comes from
the X-Profile-Id header.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import get_dal, get_profile_id
from db.errors import ForbiddenError
from db.repositories.base import DataAccessLayer
from db.rls import has_role_or_above, require_association_member
from schemas.entities import (
    Association,
    AssociationCreate,
    AssociationMember,
    Convention,
    ConventionStatus,
    UserRole,
)

router = APIRouter()


class ConventionRequest(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    location: Optional[str] = None
    status: ConventionStatus = "planning"
    settings: dict[str, Any] = Field(default_factory=dict)


def _get_association_or_404(dal: DataAccessLayer, association_id: str) -> Association:
    assoc = dal.get_association_by_id(association_id)
    if assoc is None:
        raise HTTPException(status_code=404, detail="Association not found")
    return assoc


@router.post("", status_code=201, summary="Create an association")
def create_association(
    body: AssociationCreate,
    dal: DataAccessLayer = Depends(get_dal),
) -> Association:
    return dal.create_association(body)


@router.get("/{association_id}", summary="Fetch one association")
def get_association(
    association_id: str,
    dal: DataAccessLayer = Depends(get_dal),
) -> Association:
    return _get_association_or_404(dal, association_id)


@router.get("/{association_id}/conventions", summary="Conventions of an association")
def list_conventions(
    association_id: str,
    profile_id: str = Depends(get_profile_id),
    dal: DataAccessLayer = Depends(get_dal),
) -> list[Convention]:
    require_association_member(profile_id, association_id, dal=dal)
    return dal.get_conventions_by_association(association_id)


@router.post(
    "/{association_id}/conventions",
    status_code=201,
    summary="Create a convention",
)
def create_convention(
    association_id: str,
    body: ConventionRequest,
    profile_id: str = Depends(get_profile_id),
    dal: DataAccessLayer = Depends(get_dal),
) -> Convention:
    role = require_association_member(profile_id, association_id, dal=dal)
    if not has_role_or_above(role, "manager"):
        raise ForbiddenError(f"Role {role} cannot create conventions")
    if body.end_date < body.start_date:
        raise HTTPException(status_code=422, detail="end_date is before start_date")
    return dal.create_convention({"association_id": association_id, **body.model_dump()})


class MemberRequest(BaseModel):
    profile_id: str
    role: UserRole = "member"


@router.get("/{association_id}/members", summary="Members of an association")
def list_members(
    association_id: str,
    profile_id: str = Depends(get_profile_id),
    dal: DataAccessLayer = Depends(get_dal),
) -> list[AssociationMember]:
    require_association_member(profile_id, association_id, dal=dal)
    return dal.get_association_members_by_association(association_id)


@router.post(
    "/{association_id}/members",
    status_code=201,
    summary="Add a profile to an association",
)
def add_member(
    association_id: str,
    body: MemberRequest,
    profile_id: str = Depends(get_profile_id),
    dal: DataAccessLayer = Depends(get_dal),
) -> AssociationMember:
    role = require_association_member(profile_id, association_id, dal=dal)
    if not has_role_or_above(role, "manager"):
        raise ForbiddenError(f"Role {role} cannot add members")
    if not has_role_or_above(role, body.role):
        raise ForbiddenError(f"Role {role} cannot grant {body.role}")
    return dal.create_association_member(
        {"association_id": association_id, "profile_id": body.profile_id, "role": body.role}
    )


@router.delete(
    "/{association_id}/members/{member_profile_id}",
    status_code=204,
    summary="Remove a profile from an association",
)
def remove_member(
    association_id: str,
    member_profile_id: str,
    profile_id: str = Depends(get_profile_id),
    dal: DataAccessLayer = Depends(get_dal),
) -> None:
    role = require_association_member(profile_id, association_id, dal=dal)
    if member_profile_id != profile_id and not has_role_or_above(role, "manager"):
        raise ForbiddenError(f"Role {role} cannot remove other members")
    if not dal.delete_association_member(association_id, member_profile_id):
        raise HTTPException(status_code=404, detail="Membership not found")
