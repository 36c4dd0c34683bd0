#!/usr/bin/env python
"""
scripts/run_migrations.py
--------------------------
Applies the versioned migrations in db/migrations/ to the configured
Postgres database.

Usage:
    python scripts/run_migrations.py [--dry-run | --status | --rollback]

    (default)   apply every pending migration, in version order
    --dry-run   list pending migrations without executing them
    --status    show applied and pending versions (read-only)
    --rollback  revert the most recently applied migration

Exit codes:
    0: success (or dry-run / status completed)
    1: configuration error, connection failure or SQL error

Environment variables:
    POSTGRES_URL / DATABASE_URL  (same vars used by db/connection.py)

Notes:
    - Each migration runs in its own transaction together with its
      schema_migrations row: a failed migration leaves no trace, and the
      ones applied before it stay applied.
    - Re-running is idempotent: applied versions are skipped.
"""

from __future__ import annotations

import argparse
import logging
import sys
import pathlib

# Add the backend directory to sys.path so that config is importable
_BACKEND_DIR = pathlib.Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_BACKEND_DIR))

import config
from db.connection import close_pool, get_connection_info
from db.errors import MigrationError
from db.migrator import (
    MIGRATIONS_DIR,
    check_migrations_status,
    load_migrations,
    rollback_last_migration,
    run_migrations,
)


def show_status() -> None:
    status = check_migrations_status()
    print(f"[migrations] Applied : {', '.join(status.applied) or '-'}")
    print(f"[migrations] Pending : {', '.join(status.pending) or '-'}")
    print(f"[migrations] Up to date: {'yes' if status.is_up_to_date else 'no'}")


def run(dry_run: bool = False) -> None:
    migrations = load_migrations()
    info = get_connection_info()

    print(f"[migrations] Directory  : {MIGRATIONS_DIR}")
    print(f"[migrations] Migrations : {len(migrations)}")
    print(f"[migrations] Target DB  : {info['url']} ({info['environment']})")

    if dry_run:
        status = check_migrations_status(migrations)
        print("[migrations] DRY-RUN: no changes applied.")
        by_version = {m.version: m for m in migrations}
        for version in status.pending:
            print(f"  [{version}] {by_version[version].name}")
        if not status.pending:
            print("  (nothing pending)")
        return

    try:
        result = run_migrations(migrations)
    except MigrationError as exc:
        for version in exc.applied:
            print(f"  [✓] {version}")
        print(f"  [✗] {exc.version} {exc.name}")
        print("[migrations] STOPPED at the first failure.")
        raise

    for version in result.applied:
        print(f"  [✓] {version}")
    print(
        f"[migrations] Done: {len(result.applied)} applied, "
        f"{len(result.skipped)} already up to date."
    )


def rollback() -> None:
    version = rollback_last_migration()
    if version is None:
        print("[migrations] Nothing to roll back.")
    else:
        print(f"[migrations] Rolled back {version}.")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Apply Postgres schema migrations.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run", action="store_true",
        help="List pending migrations without executing them.",
    )
    mode.add_argument(
        "--status", action="store_true",
        help="Show applied and pending migrations.",
    )
    mode.add_argument(
        "--rollback", action="store_true",
        help="Revert the most recently applied migration.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    try:
        if args.status:
            show_status()
        elif args.rollback:
            rollback()
        else:
            run(dry_run=args.dry_run)
    except Exception as exc:
        print(f"[migrations] ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        close_pool()
    return 0


if __name__ == "__main__":
    sys.exit(main())
