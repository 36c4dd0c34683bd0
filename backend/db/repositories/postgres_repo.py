"""
db/repositories/postgres_repo.py
---------------------------------
Relational implementation of the data-access interface.

Source: db/migrations/0002_users_and_profiles.sql,
        db/migrations/0003_associations_and_core_schema.sql

Every method is one parameterised statement on a pooled connection,
committed on its own (see db.connection.execute_query).  Lookups by an id
that is not a UUID return None / [] without querying: the uuid columns
would reject the literal, and the key-value backend treats such ids as
simply absent.
"""

from __future__ import annotations

import uuid
from typing import Any, Sequence

from psycopg2.extras import Json

from db.connection import ConnectionPool, execute_query, execute_query_single, get_conn
from db.repositories.base import DataAccessLayer, coerce
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

# Membership tables name their timestamp joined_at
_ASSOCIATION_MEMBER_COLUMNS = (
    "am.id, am.association_id, am.profile_id, am.role, am.joined_at AS created_at"
)
_CONVENTION_MEMBER_COLUMNS = (
    "id, convention_id, profile_id, role, joined_at AS created_at"
)


def _is_uuid(value: Any) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class PostgresDataAccess(DataAccessLayer):
    """Data access over the shared psycopg2 pool (or an explicitly passed one)."""

    adapter_type = "postgresql"

    def __init__(self, pool: ConnectionPool | None = None) -> None:
        # None → the process-wide pool, built on first query
        self._pool = pool

    # ── Raw passthrough ───────────────────────────────────────────────────────

    def execute_query(self, sql, params: Sequence[Any] | None = None) -> list[dict]:
        return execute_query(sql, params, pool=self._pool)

    def execute_query_single(self, sql, params: Sequence[Any] | None = None) -> dict | None:
        return execute_query_single(sql, params, pool=self._pool)

    def _probe(self) -> None:
        self.execute_query_single("SELECT 1")

    # ── Users ─────────────────────────────────────────────────────────────────

    def create_user(self, data: UserCreate | dict) -> User:
        user = coerce(UserCreate, data)
        row = self.execute_query_single(
            """
            INSERT INTO users (email, hashed_password, role, created_at)
            VALUES (%s, %s, %s, NOW())
            RETURNING *
            """,
            (user.email, user.hashed_password, user.role),
        )
        return User.model_validate(row)

    def get_user_by_email(self, email: str) -> User | None:
        # email is citext: comparison is case-insensitive
        row = self.execute_query_single("SELECT * FROM users WHERE email = %s", (email,))
        return User.model_validate(row) if row else None

    def get_user_by_id(self, user_id: str) -> User | None:
        if not _is_uuid(user_id):
            return None
        row = self.execute_query_single("SELECT * FROM users WHERE id = %s", (user_id,))
        return User.model_validate(row) if row else None

    def delete_user(self, user_id: str) -> bool:
        # profiles, memberships cascade; audit_logs.user_id is SET NULL
        if not _is_uuid(user_id):
            return False
        rows = self.execute_query("DELETE FROM users WHERE id = %s RETURNING id", (user_id,))
        return bool(rows)

    # ── Profiles ──────────────────────────────────────────────────────────────

    def create_profile(self, data: ProfileCreate | dict) -> Profile:
        profile = coerce(ProfileCreate, data)
        row = self.execute_query_single(
            """
            INSERT INTO profiles (
                user_id, first_name, last_name, display_name, avatar_url,
                two_factor_enabled, totp_secret, recovery_keys, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, NOW())
            RETURNING *
            """,
            (
                profile.user_id, profile.first_name, profile.last_name,
                profile.display_name, profile.avatar_url,
                profile.two_factor_enabled, profile.totp_secret,
                profile.recovery_keys,
            ),
        )
        return Profile.model_validate(row)

    def get_profile_by_user_id(self, user_id: str) -> Profile | None:
        if not _is_uuid(user_id):
            return None
        row = self.execute_query_single(
            "SELECT * FROM profiles WHERE user_id = %s", (user_id,)
        )
        return Profile.model_validate(row) if row else None

    # ── Associations ──────────────────────────────────────────────────────────

    def create_association(self, data: AssociationCreate | dict) -> Association:
        assoc = coerce(AssociationCreate, data)
        row = self.execute_query_single(
            """
            INSERT INTO associations (
                name, description, logo_url, website, email, phone, address,
                settings, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, NOW())
            RETURNING *
            """,
            (
                assoc.name, assoc.description, assoc.logo_url, assoc.website,
                assoc.email, assoc.phone, assoc.address, Json(assoc.settings),
            ),
        )
        return Association.model_validate(row)

    def get_association_by_id(self, association_id: str) -> Association | None:
        if not _is_uuid(association_id):
            return None
        row = self.execute_query_single(
            "SELECT * FROM associations WHERE id = %s", (association_id,)
        )
        return Association.model_validate(row) if row else None

    def get_all_associations(self) -> list[Association]:
        rows = self.execute_query("SELECT * FROM associations ORDER BY created_at DESC")
        return [Association.model_validate(r) for r in rows]

    # ── Association members ───────────────────────────────────────────────────

    def create_association_member(
        self, data: AssociationMemberCreate | dict
    ) -> AssociationMember:
        member = coerce(AssociationMemberCreate, data)
        # UNIQUE(association_id, profile_id) raises psycopg2.IntegrityError on a clash
        row = self.execute_query_single(
            """
            INSERT INTO association_members (association_id, profile_id, role)
            VALUES (%s, %s, %s)
            RETURNING id, association_id, profile_id, role, joined_at AS created_at
            """,
            (member.association_id, member.profile_id, member.role),
        )
        return AssociationMember.model_validate(row)

    def get_association_member(
        self, association_id: str, profile_id: str
    ) -> AssociationMember | None:
        if not (_is_uuid(association_id) and _is_uuid(profile_id)):
            return None
        row = self.execute_query_single(
            f"""
            SELECT {_ASSOCIATION_MEMBER_COLUMNS}
            FROM association_members am
            WHERE am.association_id = %s AND am.profile_id = %s
            """,
            (association_id, profile_id),
        )
        return AssociationMember.model_validate(row) if row else None

    def get_association_members_by_profile_id(
        self, profile_id: str
    ) -> list[AssociationMember]:
        if not _is_uuid(profile_id):
            return []
        rows = self.execute_query(
            f"""
            SELECT {_ASSOCIATION_MEMBER_COLUMNS}, a.name AS association_name
            FROM association_members am
            JOIN associations a ON am.association_id = a.id
            WHERE am.profile_id = %s
            ORDER BY am.joined_at DESC
            """,
            (profile_id,),
        )
        return [AssociationMember.model_validate(r) for r in rows]

    def get_association_members_by_association(
        self, association_id: str
    ) -> list[AssociationMember]:
        if not _is_uuid(association_id):
            return []
        rows = self.execute_query(
            f"""
            SELECT {_ASSOCIATION_MEMBER_COLUMNS}
            FROM association_members am
            WHERE am.association_id = %s
            ORDER BY am.joined_at
            """,
            (association_id,),
        )
        return [AssociationMember.model_validate(r) for r in rows]

    def delete_association_member(self, association_id: str, profile_id: str) -> bool:
        if not (_is_uuid(association_id) and _is_uuid(profile_id)):
            return False
        rows = self.execute_query(
            """
            DELETE FROM association_members
            WHERE association_id = %s AND profile_id = %s
            RETURNING id
            """,
            (association_id, profile_id),
        )
        return bool(rows)

    # ── Conventions ───────────────────────────────────────────────────────────

    def create_convention(self, data: ConventionCreate | dict) -> Convention:
        conv = coerce(ConventionCreate, data)
        row = self.execute_query_single(
            """
            INSERT INTO conventions (
                association_id, name, description, start_date, end_date,
                location, status, settings, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, NOW())
            RETURNING *
            """,
            (
                conv.association_id, conv.name, conv.description,
                conv.start_date, conv.end_date, conv.location, conv.status,
                Json(conv.settings),
            ),
        )
        return Convention.model_validate(row)

    def get_convention_by_id(self, convention_id: str) -> Convention | None:
        if not _is_uuid(convention_id):
            return None
        row = self.execute_query_single(
            "SELECT * FROM conventions WHERE id = %s", (convention_id,)
        )
        return Convention.model_validate(row) if row else None

    def get_conventions_by_association(self, association_id: str) -> list[Convention]:
        if not _is_uuid(association_id):
            return []
        rows = self.execute_query(
            "SELECT * FROM conventions WHERE association_id = %s ORDER BY start_date DESC",
            (association_id,),
        )
        return [Convention.model_validate(r) for r in rows]

    def create_convention_member(
        self, data: ConventionMemberCreate | dict
    ) -> ConventionMember:
        member = coerce(ConventionMemberCreate, data)
        row = self.execute_query_single(
            f"""
            INSERT INTO convention_members (convention_id, profile_id, role)
            VALUES (%s, %s, %s)
            RETURNING {_CONVENTION_MEMBER_COLUMNS}
            """,
            (member.convention_id, member.profile_id, member.role),
        )
        return ConventionMember.model_validate(row)

    def get_convention_members_by_convention(
        self, convention_id: str
    ) -> list[ConventionMember]:
        if not _is_uuid(convention_id):
            return []
        rows = self.execute_query(
            f"""
            SELECT {_CONVENTION_MEMBER_COLUMNS}
            FROM convention_members
            WHERE convention_id = %s
            ORDER BY joined_at
            """,
            (convention_id,),
        )
        return [ConventionMember.model_validate(r) for r in rows]

    # ── Items ─────────────────────────────────────────────────────────────────

    def create_item(self, data: ItemCreate | dict) -> Item:
        item = coerce(ItemCreate, data)
        row = self.execute_query_single(
            """
            INSERT INTO items (
                association_id, name, description, serial_number, barcode,
                category_id, location_id, condition, purchase_date,
                purchase_price, warranty_expires, notes, images, created_at
            ) VALUES (
                %(association_id)s, %(name)s, %(description)s, %(serial_number)s,
                %(barcode)s, %(category_id)s, %(location_id)s, %(condition)s,
                %(purchase_date)s, %(purchase_price)s, %(warranty_expires)s,
                %(notes)s, %(images)s, NOW()
            )
            RETURNING *
            """,
            item.model_dump(),
        )
        return Item.model_validate(row)

    def get_item_by_id(self, item_id: str) -> Item | None:
        if not _is_uuid(item_id):
            return None
        row = self.execute_query_single("SELECT * FROM items WHERE id = %s", (item_id,))
        return Item.model_validate(row) if row else None

    def get_item_by_barcode(self, barcode: str) -> Item | None:
        row = self.execute_query_single(
            "SELECT * FROM items WHERE barcode = %s ORDER BY created_at DESC LIMIT 1",
            (barcode,),
        )
        return Item.model_validate(row) if row else None

    def get_items_by_association(self, association_id: str) -> list[Item]:
        if not _is_uuid(association_id):
            return []
        rows = self.execute_query(
            "SELECT * FROM items WHERE association_id = %s ORDER BY name",
            (association_id,),
        )
        return [Item.model_validate(r) for r in rows]

    # ── Equipment sets ────────────────────────────────────────────────────────

    def create_equipment_set(self, data: EquipmentSetCreate | dict) -> EquipmentSet:
        eq_set = coerce(EquipmentSetCreate, data)
        # The set row and its join rows go in together
        with get_conn(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO equipment_sets (association_id, name, description, items, created_at)
                    VALUES (%s, %s, %s, %s, NOW())
                    RETURNING *
                    """,
                    (eq_set.association_id, eq_set.name, eq_set.description,
                     Json(eq_set.items)),
                )
                cols = [d[0] for d in cur.description]
                row = dict(zip(cols, cur.fetchone()))
                for item_id, quantity in eq_set.items.items():
                    cur.execute(
                        """
                        INSERT INTO equipment_set_items (equipment_set_id, item_id, quantity)
                        VALUES (%s, %s, %s)
                        """,
                        (row["id"], item_id, quantity),
                    )
        return EquipmentSet.model_validate(row)

    def get_equipment_sets_by_association(
        self, association_id: str
    ) -> list[EquipmentSet]:
        if not _is_uuid(association_id):
            return []
        rows = self.execute_query(
            "SELECT * FROM equipment_sets WHERE association_id = %s ORDER BY created_at DESC",
            (association_id,),
        )
        return [EquipmentSet.model_validate(r) for r in rows]

    def set_equipment_set_item(
        self, equipment_set_id: str, item_id: str, quantity: int = 1
    ) -> EquipmentSetItem:
        entry = EquipmentSetItem(
            equipment_set_id=equipment_set_id, item_id=item_id, quantity=quantity
        )
        with get_conn(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO equipment_set_items (equipment_set_id, item_id, quantity)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (equipment_set_id, item_id)
                    DO UPDATE SET quantity = EXCLUDED.quantity
                    """,
                    (entry.equipment_set_id, entry.item_id, entry.quantity),
                )
                # keep the denormalised items map in step with the join table
                cur.execute(
                    """
                    UPDATE equipment_sets
                    SET items = items || jsonb_build_object(%s::text, %s::int)
                    WHERE id = %s
                    """,
                    (entry.item_id, entry.quantity, entry.equipment_set_id),
                )
        return entry

    def get_equipment_set_items(self, equipment_set_id: str) -> list[EquipmentSetItem]:
        if not _is_uuid(equipment_set_id):
            return []
        rows = self.execute_query(
            """
            SELECT equipment_set_id, item_id, quantity
            FROM equipment_set_items
            WHERE equipment_set_id = %s
            ORDER BY created_at
            """,
            (equipment_set_id,),
        )
        return [EquipmentSetItem.model_validate(r) for r in rows]

    # ── System settings ───────────────────────────────────────────────────────

    def set_system_setting(self, key: str, value: str) -> None:
        self.execute_query(
            """
            INSERT INTO system_settings (key, value, created_at, updated_at)
            VALUES (%s, %s, NOW(), NOW())
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
            """,
            (key, value),
        )

    def get_system_setting(self, key: str) -> str | None:
        row = self.execute_query_single(
            "SELECT value FROM system_settings WHERE key = %s", (key,)
        )
        return row["value"] if row else None

    def get_all_system_settings(self) -> dict[str, str]:
        rows = self.execute_query("SELECT key, value FROM system_settings ORDER BY key")
        return {r["key"]: r["value"] for r in rows}

    # ── Audit logs ────────────────────────────────────────────────────────────

    def create_audit_log(self, data: AuditLogCreate | dict) -> AuditLog:
        entry = coerce(AuditLogCreate, data)
        row = self.execute_query_single(
            """
            INSERT INTO audit_logs (
                association_id, user_id, action, resource_type, resource_id,
                old_values, new_values, ip_address, user_agent, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
            RETURNING *
            """,
            (
                entry.association_id, entry.user_id, entry.action,
                entry.resource_type, entry.resource_id,
                Json(entry.old_values) if entry.old_values is not None else None,
                Json(entry.new_values) if entry.new_values is not None else None,
                entry.ip_address, entry.user_agent,
            ),
        )
        return AuditLog.model_validate(row)

    def get_audit_logs(
        self, association_id: str | None = None, limit: int = 100
    ) -> list[AuditLog]:
        if association_id is None:
            rows = self.execute_query(
                "SELECT * FROM audit_logs ORDER BY created_at DESC LIMIT %s", (limit,)
            )
        elif not _is_uuid(association_id):
            return []
        else:
            rows = self.execute_query(
                """
                SELECT * FROM audit_logs
                WHERE association_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (association_id, limit),
            )
        return [AuditLog.model_validate(r) for r in rows]
