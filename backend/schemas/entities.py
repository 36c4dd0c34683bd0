"""
schemas/entities.py
-------------------
Entity shapes returned by the data-access layer.

Both backends return these same models: Postgres rows and Redis
hashes/JSON blobs are validated into them, so callers never see which
store they came from.

Each ``*Create`` model is the input of the matching ``create_*`` call
(everything except the generated id and created_at); the entity model
extends it with those two fields.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

UserRole = Literal["guest", "member", "manager", "admin", "system_admin", "super_admin"]
ConventionRole = Literal["organizer", "staff", "helper", "attendee"]
ConventionStatus = Literal["planning", "active", "completed", "cancelled"]
ItemCondition = Literal["excellent", "good", "fair", "poor", "broken"]


# ── Users & profiles ──────────────────────────────────────────────────────────

class UserCreate(BaseModel):
    email: str
    hashed_password: Optional[str] = None
    role: UserRole = "member"


class User(UserCreate):
    id: str
    created_at: datetime


class ProfileCreate(BaseModel):
    user_id: str
    first_name: str
    last_name: str
    display_name: str
    avatar_url: Optional[str] = None
    two_factor_enabled: bool = False
    totp_secret: Optional[str] = None
    recovery_keys: list[str] = Field(default_factory=list)


class Profile(ProfileCreate):
    created_at: datetime


# ── Associations ──────────────────────────────────────────────────────────────

class AssociationCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    logo_url: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    settings: dict[str, Any] = Field(default_factory=dict)


class Association(AssociationCreate):
    id: str
    created_at: datetime


class AssociationMemberCreate(BaseModel):
    association_id: str
    profile_id: str
    role: UserRole = "member"


class AssociationMember(AssociationMemberCreate):
    id: str
    created_at: datetime
    # Filled by get_association_members_by_profile_id only
    association_name: Optional[str] = None


# ── Conventions ───────────────────────────────────────────────────────────────

class ConventionCreate(BaseModel):
    association_id: str
    name: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    location: Optional[str] = None
    status: ConventionStatus = "planning"
    settings: dict[str, Any] = Field(default_factory=dict)


class Convention(ConventionCreate):
    id: str
    created_at: datetime


class ConventionMemberCreate(BaseModel):
    convention_id: str
    profile_id: str
    role: ConventionRole = "attendee"


class ConventionMember(ConventionMemberCreate):
    id: str
    created_at: datetime


# ── Inventory ─────────────────────────────────────────────────────────────────

class ItemCreate(BaseModel):
    association_id: str
    name: str
    description: Optional[str] = None
    serial_number: Optional[str] = None
    barcode: Optional[str] = None   # QR/barcode payload, generated elsewhere
    category_id: Optional[str] = None
    location_id: Optional[str] = None
    condition: ItemCondition = "good"
    purchase_date: Optional[date] = None
    purchase_price: Optional[Decimal] = None
    warranty_expires: Optional[date] = None
    notes: Optional[str] = None
    images: list[str] = Field(default_factory=list)


class Item(ItemCreate):
    id: str
    created_at: datetime


class EquipmentSetCreate(BaseModel):
    association_id: str
    name: str
    description: Optional[str] = None
    items: dict[str, int] = Field(default_factory=dict)   # item_id -> quantity


class EquipmentSet(EquipmentSetCreate):
    id: str
    created_at: datetime


class EquipmentSetItem(BaseModel):
    equipment_set_id: str
    item_id: str
    quantity: int = Field(default=1, ge=1)


# ── Administration ────────────────────────────────────────────────────────────

class SystemSetting(BaseModel):
    key: str
    value: str
    updated_at: Optional[datetime] = None


class AuditLogCreate(BaseModel):
    association_id: Optional[str] = None
    user_id: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditLog(AuditLogCreate):
    id: str
    created_at: datetime
