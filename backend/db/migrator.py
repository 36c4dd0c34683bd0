"""
db/migrator.py
--------------
Versioned schema migrations for the Postgres backend.

Migrations live in db/migrations/ as ``<version>_<name>.sql`` with an
optional ``<version>_<name>.down.sql``.  Versions are four-digit,
zero-padded strings; file order is application order and never changes
once a version has shipped.

Applied versions are recorded in ``schema_migrations``.  Each migration's
script and its bookkeeping row are committed in one transaction, so a
version is recorded if and only if its script took effect.

Usage:
    from db.migrator import run_migrations, check_migrations_status

    result = run_migrations()          # MigrationResult(applied=[...], skipped=[...])
    status = check_migrations_status() # MigrationStatus(is_up_to_date=..., ...)

CLI: python scripts/run_migrations.py [--dry-run | --status | --rollback]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from db.connection import ConnectionPool, execute_query, execute_query_single, get_conn
from db.errors import MigrationError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR: Path = Path(__file__).resolve().parent / "migrations"
MIGRATIONS_TABLE = "schema_migrations"

_FILENAME_RE = re.compile(r"^(\d{4})_([a-z0-9_]+)\.sql$")


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    up: str
    down: str | None = None


@dataclass
class MigrationResult:
    """Outcome of run_migrations(): versions applied now, and those applied before."""
    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass
class MigrationStatus:
    is_up_to_date: bool
    applied: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)


def load_migrations(directory: Path | str = MIGRATIONS_DIR) -> list[Migration]:
    """
    Read every ``NNNN_name.sql`` file in ``directory``, ordered by version.

    Raises ValueError on a duplicate version.
    """
    directory = Path(directory)
    migrations: list[Migration] = []
    for path in sorted(directory.glob("*.sql")):
        match = _FILENAME_RE.match(path.name)
        if match is None:
            continue  # *.down.sql and anything not following the naming scheme
        version, name = match.groups()
        if migrations and migrations[-1].version == version:
            raise ValueError(f"Duplicate migration version {version} in {directory}")
        down_path = path.with_name(f"{version}_{name}.down.sql")
        migrations.append(Migration(
            version=version,
            name=name,
            up=path.read_text(encoding="utf-8"),
            down=down_path.read_text(encoding="utf-8") if down_path.exists() else None,
        ))
    return migrations


def _ensure_migrations_table(pool: ConnectionPool | None = None) -> None:
    execute_query(
        f"""
        CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
            version varchar(255) PRIMARY KEY,
            applied_at timestamptz DEFAULT now() NOT NULL
        )
        """,
        pool=pool,
    )


def _read_applied_versions(pool: ConnectionPool | None = None) -> list[str]:
    rows = execute_query(
        f"SELECT version FROM {MIGRATIONS_TABLE} ORDER BY version", pool=pool
    )
    return [row["version"] for row in rows]


def get_applied_versions(pool: ConnectionPool | None = None) -> list[str]:
    """Versions recorded in schema_migrations (creates the table if absent)."""
    _ensure_migrations_table(pool)
    return _read_applied_versions(pool)


def _apply_migration(migration: Migration, pool: ConnectionPool | None = None) -> None:
    logger.info("Applying migration %s: %s", migration.version, migration.name)
    with get_conn(pool) as conn:
        with conn.cursor() as cur:
            cur.execute(migration.up)
            cur.execute(
                f"INSERT INTO {MIGRATIONS_TABLE} (version) VALUES (%s)",
                (migration.version,),
            )
    logger.info("Migration %s applied successfully", migration.version)


def run_migrations(
    migrations: list[Migration] | None = None,
    pool: ConnectionPool | None = None,
) -> MigrationResult:
    """
    Apply every pending migration, strictly in declaration order.

    Stops at the first failure and raises MigrationError naming the failing
    version; migrations applied earlier in the run stay recorded.
    """
    if migrations is None:
        migrations = load_migrations()

    logger.info("Starting database migrations")
    already_applied = get_applied_versions(pool)
    applied_set = set(already_applied)
    pending = [m for m in migrations if m.version not in applied_set]

    if not pending:
        logger.info("No pending migrations")
        return MigrationResult(applied=[], skipped=already_applied)

    logger.info("Found %d pending migrations", len(pending))
    applied: list[str] = []
    for migration in pending:
        try:
            _apply_migration(migration, pool)
        except Exception as exc:
            logger.error(
                "Failed to apply migration %s: %s", migration.version, exc
            )
            raise MigrationError(
                migration.version, migration.name, str(exc), applied=applied
            ) from exc
        applied.append(migration.version)

    logger.info("Successfully applied %d migrations", len(applied))
    return MigrationResult(applied=applied, skipped=already_applied)


def check_migrations_status(
    migrations: list[Migration] | None = None,
    pool: ConnectionPool | None = None,
) -> MigrationStatus:
    """Report applied and pending versions without changing the database."""
    if migrations is None:
        migrations = load_migrations()

    row = execute_query_single(
        "SELECT to_regclass(%s) IS NOT NULL AS present", (MIGRATIONS_TABLE,), pool=pool
    )
    applied = _read_applied_versions(pool) if row and row["present"] else []
    applied_set = set(applied)
    pending = [m.version for m in migrations if m.version not in applied_set]
    return MigrationStatus(is_up_to_date=not pending, applied=applied, pending=pending)


def rollback_last_migration(
    migrations: list[Migration] | None = None,
    pool: ConnectionPool | None = None,
) -> str | None:
    """
    Revert the most recently applied migration with its down script.

    Returns the reverted version, or None when nothing is applied.
    Raises MigrationError if that migration has no down script.
    """
    if migrations is None:
        migrations = load_migrations()

    applied = get_applied_versions(pool)
    if not applied:
        return None
    version = applied[-1]
    by_version = {m.version: m for m in migrations}
    migration = by_version.get(version)
    if migration is None or migration.down is None:
        name = migration.name if migration else "unknown"
        raise MigrationError(version, name, "no down script available")

    logger.info("Reverting migration %s: %s", migration.version, migration.name)
    try:
        with get_conn(pool) as conn:
            with conn.cursor() as cur:
                cur.execute(migration.down)
                cur.execute(
                    f"DELETE FROM {MIGRATIONS_TABLE} WHERE version = %s",
                    (migration.version,),
                )
    except Exception as exc:
        raise MigrationError(migration.version, migration.name, str(exc)) from exc
    return version
