"""HTTP tests for the FastAPI surface, mostly backed by the in-memory key-value store."""

import uuid

import psycopg2.errors
import pytest
import redis
from fastapi.testclient import TestClient

import config
from api.deps import get_dal, get_dal_or_none
from api.routes import setup as setup_routes
from api.server import app
from db.errors import MigrationError
from db.migrator import MigrationResult, MigrationStatus
from db.repositories.postgres_repo import PostgresDataAccess
from fakes import FakePool


@pytest.fixture
def client(redis_dal):
    app.dependency_overrides[get_dal] = lambda: redis_dal
    app.dependency_overrides[get_dal_or_none] = lambda: redis_dal
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def association_with_members(redis_dal):
    assoc = redis_dal.create_association({"name": "Otaku Club"})
    redis_dal.create_association_member(
        {"association_id": assoc.id, "profile_id": "prof_manager", "role": "manager"}
    )
    redis_dal.create_association_member(
        {"association_id": assoc.id, "profile_id": "prof_member", "role": "member"}
    )
    return assoc


CONVENTION = {
    "name": "KonCon 2026",
    "start_date": "2026-07-10T09:00:00Z",
    "end_date": "2026-07-12T18:00:00Z",
    "location": "Expo Hall",
}


# ── Health & setup ────────────────────────────────────────────────────────────

def test_health_reports_database(client):
    resp = client.get("/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["database"]["type"] == "redis"
    assert body["database"]["status"] == "healthy"


def test_health_stays_200_when_database_down(client, fake_redis):
    fake_redis.down = True
    resp = client.get("/v1/health")
    assert resp.status_code == 200
    assert resp.json()["database"]["status"] == "unhealthy"


def test_health_stays_200_when_redis_unreachable_at_startup(monkeypatch, fake_redis):
    monkeypatch.setattr(config, "REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setattr(redis.Redis, "from_url", lambda url, **kwargs: fake_redis)
    fake_redis.down = True

    resp = TestClient(app, raise_server_exceptions=False).get("/v1/health")
    assert resp.status_code == 200
    assert resp.json()["database"] == {"type": "redis", "status": "unhealthy"}


def test_auto_detect_without_configuration(client):
    resp = client.get("/v1/setup/auto-detect")
    assert resp.status_code == 200
    body = resp.json()
    assert body["type"] == "postgresql"
    assert body["connection"]["has_url"] is False


def test_check_database_reports_unhealthy_without_url(client):
    resp = client.get("/v1/setup/check-database")
    assert resp.status_code == 200
    assert resp.json()["status"] == "unhealthy"


def test_migration_status(client, monkeypatch):
    monkeypatch.setattr(
        setup_routes, "check_migrations_status",
        lambda: MigrationStatus(is_up_to_date=False, applied=["0001"], pending=["0002"]),
    )
    resp = client.get("/v1/setup/migrations")
    assert resp.status_code == 200
    assert resp.json() == {"is_up_to_date": False, "applied": ["0001"], "pending": ["0002"]}


def test_run_migrations_success(client, monkeypatch):
    monkeypatch.setattr(
        setup_routes, "run_migrations",
        lambda: MigrationResult(applied=["0003", "0004"], skipped=["0001", "0002"]),
    )
    resp = client.post("/v1/setup/migrations")
    assert resp.status_code == 200
    assert resp.json()["applied"] == ["0003", "0004"]


def test_run_migrations_failure_names_version(client, monkeypatch):
    def fail():
        raise MigrationError("0003", "associations_and_core_schema", "syntax error", ["0002"])

    monkeypatch.setattr(setup_routes, "run_migrations", fail)
    resp = client.post("/v1/setup/migrations")
    assert resp.status_code == 500
    body = resp.json()
    assert body["failed_version"] == "0003"
    assert body["applied"] == ["0002"]


def test_migrations_refused_on_redis(client, monkeypatch):
    monkeypatch.setattr(config, "REDIS_URL", "redis://localhost:6379/0")
    assert client.get("/v1/setup/migrations").status_code == 400


# ── Admin settings ────────────────────────────────────────────────────────────

def test_settings_upsert_writes_audit_log(client, redis_dal):
    admin = redis_dal.create_user({"email": "admin@example.com", "role": "super_admin"})
    redis_dal.create_profile({
        "user_id": admin.id, "first_name": "Ad", "last_name": "Min", "display_name": "admin",
    })
    assert client.put("/v1/admin/settings/site_name", json={"value": "KonBase"}).status_code == 200
    resp = client.put(
        "/v1/admin/settings/site_name",
        json={"value": "KonBase EU", "user_id": admin.id},
    )
    assert resp.status_code == 200

    assert client.get("/v1/admin/settings/site_name").json() == {
        "key": "site_name", "value": "KonBase EU",
    }
    assert client.get("/v1/admin/settings").json() == {"site_name": "KonBase EU"}

    logs = client.get("/v1/admin/audit-logs").json()
    assert sorted(entry["action"] for entry in logs) == ["create", "update"]
    update = next(entry for entry in logs if entry["action"] == "update")
    assert update["old_values"] == {"site_name": "KonBase"}
    assert update["new_values"] == {"site_name": "KonBase EU"}
    assert update["user_id"] == admin.id


def test_unknown_user_is_rejected_before_setting_changes(client):
    resp = client.put("/v1/admin/settings/site_name", json={"value": "v", "user_id": "abc"})
    assert resp.status_code == 422
    assert resp.json()["success"] is False
    assert client.get("/v1/admin/settings/site_name").status_code == 404
    assert client.get("/v1/admin/audit-logs").json() == []


def test_non_uuid_user_on_postgres_writes_nothing():
    pool = FakePool()
    app.dependency_overrides[get_dal] = lambda: PostgresDataAccess(pool=pool)
    try:
        resp = TestClient(app, raise_server_exceptions=False).put(
            "/v1/admin/settings/site_name", json={"value": "v", "user_id": "abc"},
        )
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 422
    assert pool.statements == []


def test_missing_setting_is_404(client):
    resp = client.get("/v1/admin/settings/nope")
    assert resp.status_code == 404
    assert resp.json()["success"] is False


# ── Associations & access control ─────────────────────────────────────────────

def test_create_and_fetch_association(client):
    resp = client.post("/v1/associations", json={"name": "Cosplay Guild"})
    assert resp.status_code == 201
    assoc_id = resp.json()["id"]

    fetched = client.get(f"/v1/associations/{assoc_id}")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Cosplay Guild"
    assert client.get("/v1/associations/assoc_0_missing").status_code == 404


def test_empty_association_name_is_rejected(client):
    assert client.post("/v1/associations", json={"name": ""}).status_code == 422


def test_manager_can_create_convention(client, association_with_members):
    resp = client.post(
        f"/v1/associations/{association_with_members.id}/conventions",
        json=CONVENTION,
        headers={"X-Profile-Id": "prof_manager"},
    )
    assert resp.status_code == 201
    assert resp.json()["status"] == "planning"

    listed = client.get(
        f"/v1/associations/{association_with_members.id}/conventions",
        headers={"X-Profile-Id": "prof_member"},
    )
    assert listed.status_code == 200
    assert [c["name"] for c in listed.json()] == ["KonCon 2026"]


def test_plain_member_cannot_create_convention(client, association_with_members):
    resp = client.post(
        f"/v1/associations/{association_with_members.id}/conventions",
        json=CONVENTION,
        headers={"X-Profile-Id": "prof_member"},
    )
    assert resp.status_code == 403


def test_outsider_cannot_list_conventions(client, association_with_members):
    resp = client.get(
        f"/v1/associations/{association_with_members.id}/conventions",
        headers={"X-Profile-Id": "prof_stranger"},
    )
    assert resp.status_code == 403


def test_profile_header_is_required(client, association_with_members):
    resp = client.get(f"/v1/associations/{association_with_members.id}/conventions")
    assert resp.status_code == 422


def test_manager_adds_and_removes_members(client, association_with_members):
    path = f"/v1/associations/{association_with_members.id}/members"
    manager = {"X-Profile-Id": "prof_manager"}

    resp = client.post(path, json={"profile_id": "prof_new"}, headers=manager)
    assert resp.status_code == 201
    assert resp.json()["role"] == "member"

    listed = client.get(path, headers=manager).json()
    assert sorted(m["profile_id"] for m in listed) == ["prof_manager", "prof_member", "prof_new"]

    assert client.delete(f"{path}/prof_new", headers=manager).status_code == 204
    assert client.delete(f"{path}/prof_new", headers=manager).status_code == 404


def test_duplicate_membership_maps_to_conflict(client, association_with_members):
    resp = client.post(
        f"/v1/associations/{association_with_members.id}/members",
        json={"profile_id": "prof_member"},
        headers={"X-Profile-Id": "prof_manager"},
    )
    assert resp.status_code == 409
    assert resp.json()["success"] is False


def test_manager_cannot_grant_admin(client, association_with_members):
    resp = client.post(
        f"/v1/associations/{association_with_members.id}/members",
        json={"profile_id": "prof_new", "role": "admin"},
        headers={"X-Profile-Id": "prof_manager"},
    )
    assert resp.status_code == 403


def test_member_can_leave_but_not_remove_others(client, association_with_members):
    path = f"/v1/associations/{association_with_members.id}/members"
    member = {"X-Profile-Id": "prof_member"}
    assert client.delete(f"{path}/prof_manager", headers=member).status_code == 403
    assert client.delete(f"{path}/prof_member", headers=member).status_code == 204


def _add_member_on_postgres(insert_error):
    assoc_id, manager_id = str(uuid.uuid4()), str(uuid.uuid4())

    def responder(text, params, conn):
        if "INSERT INTO association_members" in text:
            raise insert_error
        return [{
            "id": str(uuid.uuid4()), "association_id": assoc_id, "profile_id": manager_id,
            "role": "manager", "created_at": "2026-01-01T00:00:00Z",
        }]

    app.dependency_overrides[get_dal] = lambda: PostgresDataAccess(pool=FakePool(responder))
    try:
        return TestClient(app, raise_server_exceptions=False).post(
            f"/v1/associations/{assoc_id}/members",
            json={"profile_id": str(uuid.uuid4())},
            headers={"X-Profile-Id": manager_id},
        )
    finally:
        app.dependency_overrides.clear()


def test_foreign_key_violation_is_not_a_conflict():
    resp = _add_member_on_postgres(psycopg2.errors.ForeignKeyViolation(
        "insert or update on table \"association_members\" violates foreign key constraint"
    ))
    assert resp.status_code == 422
    assert resp.json() == {"detail": "Database constraint violation", "success": False}


def test_unique_violation_on_postgres_is_conflict():
    resp = _add_member_on_postgres(psycopg2.errors.UniqueViolation(
        "duplicate key value violates unique constraint"
    ))
    assert resp.status_code == 409
    assert resp.json() == {"detail": "Record already exists", "success": False}


def test_unconfigured_backend_maps_to_503():
    assoc_id, profile_id = str(uuid.uuid4()), str(uuid.uuid4())
    app.dependency_overrides.clear()
    plain = TestClient(app, raise_server_exceptions=False)
    resp = plain.get(
        f"/v1/associations/{assoc_id}/conventions",
        headers={"X-Profile-Id": profile_id},
    )
    assert resp.status_code == 503
