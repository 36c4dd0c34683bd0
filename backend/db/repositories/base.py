"""
db/repositories/base.py
------------------------
The backend-independent data-access interface.

Two implementations:
    PostgresDataAccess  in postgres_repo.py, SQL over the pool
    RedisDataAccess     in redis_repo.py, hashes and JSON blobs

Shared contract:
    - create_* take the matching ``*Create`` model (or a dict of its fields)
      and return the full entity with id and created_at filled in.
    - single lookups return None when nothing matches, list lookups [].
    - backend errors (connectivity, malformed SQL, constraint violations)
      propagate untranslated.
    - health_check() never raises.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Literal, Sequence, TypeVar

from pydantic import BaseModel

from db.errors import UnsupportedOperationError
from schemas.entities import (
    Association,
    AssociationCreate,
    AssociationMember,
    AssociationMemberCreate,
    AuditLog,
    AuditLogCreate,
    Convention,
    ConventionCreate,
    ConventionMember,
    ConventionMemberCreate,
    EquipmentSet,
    EquipmentSetCreate,
    EquipmentSetItem,
    Item,
    ItemCreate,
    Profile,
    ProfileCreate,
    User,
    UserCreate,
)

logger = logging.getLogger(__name__)

BackendType = Literal["postgresql", "redis"]

M = TypeVar("M", bound=BaseModel)


def coerce(model_cls: type[M], data: M | dict[str, Any]) -> M:
    """Accept either a model instance or a plain dict of its fields."""
    if isinstance(data, model_cls):
        return data
    return model_cls.model_validate(data)


class DataAccessLayer(ABC):
    """One interface over both stores; pick the implementation once, at construction."""

    adapter_type: BackendType

    def get_adapter_type(self) -> BackendType:
        return self.adapter_type

    # ── Raw passthrough (relational only) ─────────────────────────────────────

    def execute_query(self, sql, params: Sequence[Any] | None = None) -> list[dict]:
        raise UnsupportedOperationError(
            f"execute_query is only supported for PostgreSQL (backend: {self.adapter_type})"
        )

    def execute_query_single(self, sql, params: Sequence[Any] | None = None) -> dict | None:
        raise UnsupportedOperationError(
            f"execute_query_single is only supported for PostgreSQL (backend: {self.adapter_type})"
        )

    # ── Users ─────────────────────────────────────────────────────────────────

    @abstractmethod
    def create_user(self, data: UserCreate | dict) -> User: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> User | None:
        """Case-insensitive match."""

    @abstractmethod
    def get_user_by_id(self, user_id: str) -> User | None: ...

    @abstractmethod
    def delete_user(self, user_id: str) -> bool:
        """
        Remove a user together with its profile and memberships.

        Audit log rows survive with user_id cleared.  Returns False when the
        user did not exist.
        """

    # ── Profiles ──────────────────────────────────────────────────────────────

    @abstractmethod
    def create_profile(self, data: ProfileCreate | dict) -> Profile: ...

    @abstractmethod
    def get_profile_by_user_id(self, user_id: str) -> Profile | None: ...

    # ── Associations ──────────────────────────────────────────────────────────

    @abstractmethod
    def create_association(self, data: AssociationCreate | dict) -> Association: ...

    @abstractmethod
    def get_association_by_id(self, association_id: str) -> Association | None: ...

    @abstractmethod
    def get_all_associations(self) -> list[Association]: ...

    # ── Association members ───────────────────────────────────────────────────

    @abstractmethod
    def create_association_member(
        self, data: AssociationMemberCreate | dict
    ) -> AssociationMember:
        """A profile holds at most one membership per association."""

    @abstractmethod
    def get_association_member(
        self, association_id: str, profile_id: str
    ) -> AssociationMember | None: ...

    @abstractmethod
    def get_association_members_by_profile_id(
        self, profile_id: str
    ) -> list[AssociationMember]:
        """Memberships of one profile, each carrying ``association_name``."""

    @abstractmethod
    def get_association_members_by_association(
        self, association_id: str
    ) -> list[AssociationMember]: ...

    @abstractmethod
    def delete_association_member(self, association_id: str, profile_id: str) -> bool:
        """Remove the membership only; the profile is untouched."""

    # ── Conventions ───────────────────────────────────────────────────────────

    @abstractmethod
    def create_convention(self, data: ConventionCreate | dict) -> Convention: ...

    @abstractmethod
    def get_convention_by_id(self, convention_id: str) -> Convention | None: ...

    @abstractmethod
    def get_conventions_by_association(self, association_id: str) -> list[Convention]: ...

    @abstractmethod
    def create_convention_member(
        self, data: ConventionMemberCreate | dict
    ) -> ConventionMember: ...

    @abstractmethod
    def get_convention_members_by_convention(
        self, convention_id: str
    ) -> list[ConventionMember]: ...

    # ── Items & equipment sets ────────────────────────────────────────────────

    @abstractmethod
    def create_item(self, data: ItemCreate | dict) -> Item: ...

    @abstractmethod
    def get_item_by_id(self, item_id: str) -> Item | None: ...

    @abstractmethod
    def get_item_by_barcode(self, barcode: str) -> Item | None:
        """Most recently created item carrying this barcode/QR payload."""

    @abstractmethod
    def get_items_by_association(self, association_id: str) -> list[Item]: ...

    @abstractmethod
    def create_equipment_set(self, data: EquipmentSetCreate | dict) -> EquipmentSet: ...

    @abstractmethod
    def get_equipment_sets_by_association(
        self, association_id: str
    ) -> list[EquipmentSet]: ...

    @abstractmethod
    def set_equipment_set_item(
        self, equipment_set_id: str, item_id: str, quantity: int = 1
    ) -> EquipmentSetItem:
        """Add an item to a set, or overwrite its quantity."""

    @abstractmethod
    def get_equipment_set_items(self, equipment_set_id: str) -> list[EquipmentSetItem]: ...

    # ── System settings ───────────────────────────────────────────────────────

    @abstractmethod
    def set_system_setting(self, key: str, value: str) -> None:
        """Upsert; the last write wins."""

    @abstractmethod
    def get_system_setting(self, key: str) -> str | None: ...

    @abstractmethod
    def get_all_system_settings(self) -> dict[str, str]: ...

    # ── Audit logs ────────────────────────────────────────────────────────────

    @abstractmethod
    def create_audit_log(self, data: AuditLogCreate | dict) -> AuditLog: ...

    @abstractmethod
    def get_audit_logs(
        self, association_id: str | None = None, limit: int = 100
    ) -> list[AuditLog]:
        """Newest first; all associations when ``association_id`` is None."""

    # ── Health ────────────────────────────────────────────────────────────────

    @abstractmethod
    def _probe(self) -> None:
        """Cheapest round trip the backend supports."""

    def health_check(self) -> dict:
        """``{"status": "healthy", "latency": ms}`` or ``{"status": "unhealthy"}``."""
        start = time.perf_counter()
        try:
            self._probe()
        except Exception as exc:
            logger.error("Health check failed (%s): %s", self.adapter_type, exc)
            return {"status": "unhealthy"}
        latency = round((time.perf_counter() - start) * 1000, 2)
        return {"status": "healthy", "latency": latency}
