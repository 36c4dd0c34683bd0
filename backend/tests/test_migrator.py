"""Tests for the versioned migration runner."""

import pytest

from db.errors import MigrationError
from db.migrator import (
    MIGRATIONS_DIR,
    Migration,
    check_migrations_status,
    load_migrations,
    rollback_last_migration,
    run_migrations,
)
from fakes import MigrationDatabase


def _migrations(*specs):
    return [
        Migration(version=v, name=f"step_{v}", up=up, down=f"UNDO {v}")
        for v, up in specs
    ]


MIGRATIONS = _migrations(
    ("0001", "CREATE EXTENSION citext"),
    ("0002", "CREATE TABLE users ()"),
    ("0003", "CREATE TABLE associations ()"),
)


def test_shipped_migrations_load_in_order():
    migrations = load_migrations(MIGRATIONS_DIR)
    assert [m.version for m in migrations] == ["0001", "0002", "0003", "0004"]
    assert migrations[0].name == "initial_extensions_and_enums"
    assert all(m.down for m in migrations)
    assert "CREATE TABLE users" in migrations[1].up


def test_loader_ignores_down_scripts_and_stray_files(tmp_path):
    (tmp_path / "0002_second.sql").write_text("SELECT 2")
    (tmp_path / "0001_first.sql").write_text("SELECT 1")
    (tmp_path / "0001_first.down.sql").write_text("SELECT -1")
    (tmp_path / "README.md").write_text("notes")

    migrations = load_migrations(tmp_path)

    assert [(m.version, m.name) for m in migrations] == [("0001", "first"), ("0002", "second")]
    assert migrations[0].down == "SELECT -1"
    assert migrations[1].down is None


def test_loader_rejects_duplicate_versions(tmp_path):
    (tmp_path / "0001_first.sql").write_text("SELECT 1")
    (tmp_path / "0001_again.sql").write_text("SELECT 1")
    with pytest.raises(ValueError):
        load_migrations(tmp_path)


def test_run_applies_pending_in_order_then_nothing():
    db = MigrationDatabase()

    first = run_migrations(MIGRATIONS, pool=db)
    second = run_migrations(MIGRATIONS, pool=db)

    assert first.applied == ["0001", "0002", "0003"]
    assert first.skipped == []
    assert second.applied == []
    assert second.skipped == ["0001", "0002", "0003"]
    assert db.executed_scripts == [m.up for m in MIGRATIONS]


def test_new_migration_runs_after_existing_ones():
    db = MigrationDatabase()
    run_migrations(MIGRATIONS, pool=db)

    extended = MIGRATIONS + _migrations(
        ("0004", "ALTER TABLE users ENABLE ROW LEVEL SECURITY"),
        ("0005", "CREATE INDEX idx_users_role ON users (role)"),
    )
    result = run_migrations(extended, pool=db)

    assert result.applied == ["0004", "0005"]
    assert db.executed_scripts[-2:] == [extended[3].up, extended[4].up]


def test_failure_stops_the_run_and_keeps_earlier_versions():
    db = MigrationDatabase(fail_on="BROKEN")
    migrations = _migrations(
        ("0001", "CREATE EXTENSION citext"),
        ("0002", "BROKEN STATEMENT"),
        ("0003", "CREATE TABLE never_reached ()"),
    )

    with pytest.raises(MigrationError) as excinfo:
        run_migrations(migrations, pool=db)

    err = excinfo.value
    assert err.version == "0002"
    assert err.name == "step_0002"
    assert err.applied == ["0001"]
    assert "BROKEN" in str(err)
    assert db.versions == ["0001"]
    assert "CREATE TABLE never_reached ()" not in db.executed_scripts


def test_failed_migration_leaves_no_bookkeeping_row():
    db = MigrationDatabase(fail_on="BROKEN")
    migrations = _migrations(("0001", "BROKEN"))
    with pytest.raises(MigrationError):
        run_migrations(migrations, pool=db)
    assert db.versions == []

    db.fail_on = None
    assert run_migrations(migrations, pool=db).applied == ["0001"]


def test_status_is_read_only_before_first_run():
    db = MigrationDatabase()

    status = check_migrations_status(MIGRATIONS, pool=db)

    assert status.is_up_to_date is False
    assert status.applied == []
    assert status.pending == ["0001", "0002", "0003"]
    assert db.table_exists is False
    assert not any("CREATE TABLE" in sql for sql in db.sql())


def test_status_after_partial_run():
    db = MigrationDatabase()
    run_migrations(MIGRATIONS[:2], pool=db)

    status = check_migrations_status(MIGRATIONS, pool=db)

    assert status.applied == ["0001", "0002"]
    assert status.pending == ["0003"]
    assert check_migrations_status(MIGRATIONS[:2], pool=db).is_up_to_date is True


def test_rollback_reverts_latest_version():
    db = MigrationDatabase()
    run_migrations(MIGRATIONS, pool=db)

    assert rollback_last_migration(MIGRATIONS, pool=db) == "0003"
    assert db.versions == ["0001", "0002"]
    assert db.executed_scripts[-1] == "UNDO 0003"


def test_rollback_with_nothing_applied():
    assert rollback_last_migration(MIGRATIONS, pool=MigrationDatabase()) is None


def test_rollback_without_down_script_raises():
    db = MigrationDatabase()
    migrations = [Migration(version="0001", name="one_way", up="CREATE TABLE t ()")]
    run_migrations(migrations, pool=db)
    with pytest.raises(MigrationError):
        rollback_last_migration(migrations, pool=db)
    assert db.versions == ["0001"]
