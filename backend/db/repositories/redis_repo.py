"""
db/repositories/redis_repo.py
------------------------------
Key-value implementation of the data-access interface.

Key layout: see db/redis_client.py.

Storage rules:
  - users and profiles are point lookups → Hash, each field JSON-encoded
  - everything listed by parent → JSON string under ``<collection>:<id>``
  - any lookup on a non-key field goes through a secondary index key
    ``idx:<collection>:<field>:<value>`` holding the record id; records and
    their index entries are only ever written together by ``_store``

Listing by parent is ``KEYS <collection>:*`` + one GET per key + a
client-side filter: O(n) over the whole collection on every call.  That is
the known ceiling of this backend; large tenants belong on Postgres.

Redis has no cascades: delete_user removes dependent records explicitly.
Ids are ``<prefix>_<epoch ms>_<9 random chars>``; created_at is stamped
with this process's UTC clock, so it is not comparable with
server-stamped Postgres timestamps.
"""

from __future__ import annotations

import json
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

import redis
from pydantic import BaseModel

from db.errors import UniqueViolationError
from db.redis_client import get_redis
from db.repositories.base import M, DataAccessLayer, coerce
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


def _new_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _index_key(collection: str, field: str, *values: str) -> str:
    return ":".join(("idx", collection, field, *values))


def _member_pair_key(collection: str, parent_id: str, profile_id: str) -> str:
    return _index_key(collection, "pair", parent_id, profile_id)


class RedisDataAccess(DataAccessLayer):
    """Data access over one redis-py client (the process singleton by default)."""

    adapter_type = "redis"

    def __init__(self, client: redis.Redis | None = None) -> None:
        self._client = client if client is not None else get_redis()

    @property
    def client(self) -> redis.Redis:
        return self._client

    def _probe(self) -> None:
        self._client.ping()

    # ── Storage helpers ───────────────────────────────────────────────────────

    def _store(
        self,
        key: str,
        record: BaseModel,
        *,
        as_hash: bool = False,
        indexes: dict[str, str] | None = None,
        unique: bool = False,
    ) -> None:
        """
        Write a record and the index entries that point at it.

        With ``unique=True`` every index entry is claimed with SET NX first;
        if one is already taken nothing is written and UniqueViolationError
        is raised.
        """
        indexes = indexes or {}
        claimed: list[str] = []
        for index_key, target in indexes.items():
            if self._client.set(index_key, target, nx=unique) or not unique:
                claimed.append(index_key)
                continue
            if claimed:
                self._client.delete(*claimed)
            raise UniqueViolationError(index_key)

        if as_hash:
            fields = record.model_dump(mode="json")
            self._client.hset(key, mapping={k: json.dumps(v) for k, v in fields.items()})
        else:
            self._client.set(key, record.model_dump_json())

    def _load_json(self, key: str, model_cls: type[M]) -> M | None:
        raw = self._client.get(key)
        return model_cls.model_validate_json(raw) if raw else None

    def _load_hash(self, key: str, model_cls: type[M]) -> M | None:
        data = self._client.hgetall(key)
        if not data:
            return None
        return model_cls.model_validate({k: json.loads(v) for k, v in data.items()})

    def _lookup(self, index_key: str, collection: str, model_cls: type[M]) -> M | None:
        record_id = self._client.get(index_key)
        if not record_id:
            return None
        return self._load_json(f"{collection}:{record_id}", model_cls)

    def _scan(
        self,
        collection: str,
        model_cls: type[M],
        predicate: Callable[[M], bool] | None = None,
    ) -> list[M]:
        """Every record of a collection that passes ``predicate`` (full scan)."""
        records: list[M] = []
        for key in self._client.keys(f"{collection}:*"):
            record = self._load_json(key, model_cls)
            if record is not None and (predicate is None or predicate(record)):
                records.append(record)
        return records

    # ── Users ─────────────────────────────────────────────────────────────────

    def create_user(self, data: UserCreate | dict) -> User:
        draft = coerce(UserCreate, data)
        user = User(id=_new_id("user"), created_at=_now(), **draft.model_dump())
        self._store(
            f"users:{user.id}", user, as_hash=True,
            indexes={_index_key("users", "email", user.email.lower()): user.id},
            unique=True,
        )
        return user

    def get_user_by_email(self, email: str) -> User | None:
        user_id = self._client.get(_index_key("users", "email", email.lower()))
        if not user_id:
            return None
        return self._load_hash(f"users:{user_id}", User)

    def get_user_by_id(self, user_id: str) -> User | None:
        return self._load_hash(f"users:{user_id}", User)

    def delete_user(self, user_id: str) -> bool:
        user = self.get_user_by_id(user_id)
        if user is None:
            return False

        for member in self._scan(
            "association_members", AssociationMember, lambda m: m.profile_id == user_id
        ):
            self._drop_association_member(member)
        for member in self._scan(
            "convention_members", ConventionMember, lambda m: m.profile_id == user_id
        ):
            self._client.delete(
                f"convention_members:{member.id}",
                _member_pair_key("convention_members", member.convention_id, user_id),
            )
        for entry in self._scan("audit_logs", AuditLog, lambda a: a.user_id == user_id):
            self._store(f"audit_logs:{entry.id}", entry.model_copy(update={"user_id": None}))

        self._client.delete(
            f"profiles:{user_id}",
            _index_key("profiles", "user_id", user_id),
            _index_key("users", "email", user.email.lower()),
            f"users:{user_id}",
        )
        return True

    # ── Profiles ──────────────────────────────────────────────────────────────

    def create_profile(self, data: ProfileCreate | dict) -> Profile:
        draft = coerce(ProfileCreate, data)
        profile = Profile(created_at=_now(), **draft.model_dump())
        self._store(
            f"profiles:{profile.user_id}", profile, as_hash=True,
            indexes={_index_key("profiles", "user_id", profile.user_id): profile.user_id},
            unique=True,
        )
        return profile

    def get_profile_by_user_id(self, user_id: str) -> Profile | None:
        return self._load_hash(f"profiles:{user_id}", Profile)

    # ── Associations ──────────────────────────────────────────────────────────

    def create_association(self, data: AssociationCreate | dict) -> Association:
        draft = coerce(AssociationCreate, data)
        assoc = Association(id=_new_id("assoc"), created_at=_now(), **draft.model_dump())
        self._store(f"associations:{assoc.id}", assoc)
        return assoc

    def get_association_by_id(self, association_id: str) -> Association | None:
        return self._load_json(f"associations:{association_id}", Association)

    def get_all_associations(self) -> list[Association]:
        assocs = self._scan("associations", Association)
        return sorted(assocs, key=lambda a: a.created_at, reverse=True)

    # ── Association members ───────────────────────────────────────────────────

    def create_association_member(
        self, data: AssociationMemberCreate | dict
    ) -> AssociationMember:
        draft = coerce(AssociationMemberCreate, data)
        member = AssociationMember(id=_new_id("member"), created_at=_now(), **draft.model_dump())
        pair_key = _member_pair_key(
            "association_members", member.association_id, member.profile_id
        )
        self._store(
            f"association_members:{member.id}", member,
            indexes={pair_key: member.id}, unique=True,
        )
        return member

    def get_association_member(
        self, association_id: str, profile_id: str
    ) -> AssociationMember | None:
        return self._lookup(
            _member_pair_key("association_members", association_id, profile_id),
            "association_members", AssociationMember,
        )

    def get_association_members_by_profile_id(
        self, profile_id: str
    ) -> list[AssociationMember]:
        members = self._scan(
            "association_members", AssociationMember, lambda m: m.profile_id == profile_id
        )
        result = []
        for member in sorted(members, key=lambda m: m.created_at, reverse=True):
            assoc = self.get_association_by_id(member.association_id)
            result.append(member.model_copy(
                update={"association_name": assoc.name if assoc else None}
            ))
        return result

    def get_association_members_by_association(
        self, association_id: str
    ) -> list[AssociationMember]:
        members = self._scan(
            "association_members", AssociationMember,
            lambda m: m.association_id == association_id,
        )
        return sorted(members, key=lambda m: m.created_at)

    def delete_association_member(self, association_id: str, profile_id: str) -> bool:
        member = self.get_association_member(association_id, profile_id)
        if member is None:
            return False
        self._drop_association_member(member)
        return True

    def _drop_association_member(self, member: AssociationMember) -> None:
        self._client.delete(
            f"association_members:{member.id}",
            _member_pair_key("association_members", member.association_id, member.profile_id),
        )

    # ── Conventions ───────────────────────────────────────────────────────────

    def create_convention(self, data: ConventionCreate | dict) -> Convention:
        draft = coerce(ConventionCreate, data)
        conv = Convention(id=_new_id("conv"), created_at=_now(), **draft.model_dump())
        self._store(f"conventions:{conv.id}", conv)
        return conv

    def get_convention_by_id(self, convention_id: str) -> Convention | None:
        return self._load_json(f"conventions:{convention_id}", Convention)

    def get_conventions_by_association(self, association_id: str) -> list[Convention]:
        convs = self._scan(
            "conventions", Convention, lambda c: c.association_id == association_id
        )
        return sorted(convs, key=lambda c: c.start_date, reverse=True)

    def create_convention_member(
        self, data: ConventionMemberCreate | dict
    ) -> ConventionMember:
        draft = coerce(ConventionMemberCreate, data)
        member = ConventionMember(
            id=_new_id("conv_member"), created_at=_now(), **draft.model_dump()
        )
        pair_key = _member_pair_key(
            "convention_members", member.convention_id, member.profile_id
        )
        self._store(
            f"convention_members:{member.id}", member,
            indexes={pair_key: member.id}, unique=True,
        )
        return member

    def get_convention_members_by_convention(
        self, convention_id: str
    ) -> list[ConventionMember]:
        members = self._scan(
            "convention_members", ConventionMember,
            lambda m: m.convention_id == convention_id,
        )
        return sorted(members, key=lambda m: m.created_at)

    # ── Items ─────────────────────────────────────────────────────────────────

    def create_item(self, data: ItemCreate | dict) -> Item:
        draft = coerce(ItemCreate, data)
        item = Item(id=_new_id("item"), created_at=_now(), **draft.model_dump())
        indexes = {}
        if item.barcode:
            # not unique: the newest item wins, as ORDER BY created_at DESC does
            indexes[_index_key("items", "barcode", item.barcode)] = item.id
        self._store(f"items:{item.id}", item, indexes=indexes)
        return item

    def get_item_by_id(self, item_id: str) -> Item | None:
        return self._load_json(f"items:{item_id}", Item)

    def get_item_by_barcode(self, barcode: str) -> Item | None:
        return self._lookup(_index_key("items", "barcode", barcode), "items", Item)

    def get_items_by_association(self, association_id: str) -> list[Item]:
        items = self._scan("items", Item, lambda i: i.association_id == association_id)
        return sorted(items, key=lambda i: i.name)

    # ── Equipment sets ────────────────────────────────────────────────────────

    def create_equipment_set(self, data: EquipmentSetCreate | dict) -> EquipmentSet:
        draft = coerce(EquipmentSetCreate, data)
        eq_set = EquipmentSet(id=_new_id("eqset"), created_at=_now(), **draft.model_dump())
        self._store(f"equipment_sets:{eq_set.id}", eq_set)
        if eq_set.items:
            self._client.hset(
                f"equipment_set_items:{eq_set.id}",
                mapping={k: str(v) for k, v in eq_set.items.items()},
            )
        return eq_set

    def get_equipment_sets_by_association(
        self, association_id: str
    ) -> list[EquipmentSet]:
        sets = self._scan(
            "equipment_sets", EquipmentSet, lambda s: s.association_id == association_id
        )
        return sorted(sets, key=lambda s: s.created_at, reverse=True)

    def set_equipment_set_item(
        self, equipment_set_id: str, item_id: str, quantity: int = 1
    ) -> EquipmentSetItem:
        entry = EquipmentSetItem(
            equipment_set_id=equipment_set_id, item_id=item_id, quantity=quantity
        )
        self._client.hset(f"equipment_set_items:{equipment_set_id}", item_id, str(quantity))
        eq_set = self._load_json(f"equipment_sets:{equipment_set_id}", EquipmentSet)
        if eq_set is not None:
            items = {**eq_set.items, item_id: quantity}
            self._store(f"equipment_sets:{eq_set.id}", eq_set.model_copy(update={"items": items}))
        return entry

    def get_equipment_set_items(self, equipment_set_id: str) -> list[EquipmentSetItem]:
        data = self._client.hgetall(f"equipment_set_items:{equipment_set_id}")
        return [
            EquipmentSetItem(equipment_set_id=equipment_set_id, item_id=k, quantity=int(v))
            for k, v in data.items()
        ]

    # ── System settings ───────────────────────────────────────────────────────

    def set_system_setting(self, key: str, value: str) -> None:
        self._client.set(f"system_settings:{key}", value)

    def get_system_setting(self, key: str) -> str | None:
        return self._client.get(f"system_settings:{key}")

    def get_all_system_settings(self) -> dict[str, str]:
        prefix = "system_settings:"
        settings = {}
        for key in self._client.keys(f"{prefix}*"):
            value = self._client.get(key)
            if value is not None:
                settings[key[len(prefix):]] = value
        return dict(sorted(settings.items()))

    # ── Audit logs ────────────────────────────────────────────────────────────

    def create_audit_log(self, data: AuditLogCreate | dict) -> AuditLog:
        draft = coerce(AuditLogCreate, data)
        entry = AuditLog(id=_new_id("audit"), created_at=_now(), **draft.model_dump())
        self._store(f"audit_logs:{entry.id}", entry)
        return entry

    def get_audit_logs(
        self, association_id: str | None = None, limit: int = 100
    ) -> list[AuditLog]:
        predicate = None
        if association_id is not None:
            predicate = lambda a: a.association_id == association_id  # noqa: E731
        entries = self._scan("audit_logs", AuditLog, predicate)
        entries.sort(key=lambda a: a.created_at, reverse=True)
        return entries[:limit]
