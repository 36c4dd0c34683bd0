"""Tests for the scripts/run_migrations.py command line."""

import importlib.util
import pathlib

import pytest

from db.errors import MigrationError
from db.migrator import Migration, MigrationResult, MigrationStatus

SCRIPT = pathlib.Path(__file__).resolve().parent.parent / "scripts" / "run_migrations.py"


@pytest.fixture
def cli():
    module_spec = importlib.util.spec_from_file_location("run_migrations_cli", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


@pytest.fixture
def two_migrations(cli, monkeypatch):
    migrations = [
        Migration(version="0001", name="first", up="SELECT 1"),
        Migration(version="0002", name="second", up="SELECT 2"),
    ]
    monkeypatch.setattr(cli, "load_migrations", lambda: migrations)
    return migrations


def test_apply_prints_progress(cli, two_migrations, monkeypatch, capsys):
    monkeypatch.setattr(
        cli, "run_migrations",
        lambda migrations: MigrationResult(applied=["0002"], skipped=["0001"]),
    )
    assert cli.main([]) == 0
    out = capsys.readouterr().out
    assert "[migrations] Migrations : 2" in out
    assert "[✓] 0002" in out
    assert "1 applied, 1 already up to date" in out


def test_failure_exits_nonzero(cli, two_migrations, monkeypatch, capsys):
    def fail(migrations):
        raise MigrationError("0002", "second", "syntax error", ["0001"])

    monkeypatch.setattr(cli, "run_migrations", fail)
    assert cli.main([]) == 1
    captured = capsys.readouterr()
    assert "[✗] 0002 second" in captured.out
    assert "[migrations] ERROR" in captured.err


def test_dry_run_lists_pending_only(cli, two_migrations, monkeypatch, capsys):
    monkeypatch.setattr(
        cli, "check_migrations_status",
        lambda migrations: MigrationStatus(is_up_to_date=False, applied=["0001"], pending=["0002"]),
    )
    monkeypatch.setattr(cli, "run_migrations", pytest.fail)
    assert cli.main(["--dry-run"]) == 0
    out = capsys.readouterr().out
    assert "DRY-RUN" in out
    assert "[0002] second" in out
    assert "[0001]" not in out


def test_status(cli, monkeypatch, capsys):
    monkeypatch.setattr(
        cli, "check_migrations_status",
        lambda: MigrationStatus(is_up_to_date=True, applied=["0001", "0002"], pending=[]),
    )
    assert cli.main(["--status"]) == 0
    assert "Up to date: yes" in capsys.readouterr().out


def test_rollback(cli, monkeypatch, capsys):
    monkeypatch.setattr(cli, "rollback_last_migration", lambda: "0004")
    assert cli.main(["--rollback"]) == 0
    assert "Rolled back 0004" in capsys.readouterr().out


def test_unconfigured_database_exits_nonzero(cli, capsys):
    assert cli.main(["--status"]) == 1
    assert "POSTGRES_URL" in capsys.readouterr().err
