"""
config.py
---------
Central configuration for the KonBase backend.
All connection strings loaded from environment variables: never hard-coded.

Values are read once at import.  Code that needs them reads the module
attribute at call time (``config.POSTGRES_URL``), so tests can monkeypatch.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the backend directory (if it exists).  Won't override vars
# already set in the shell.
_env_path = Path(__file__).parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

# ── Environment ───────────────────────────────────────────────────────────────
# "production" switches the Postgres pool to sslmode=require
APP_ENV: str = os.getenv("APP_ENV", os.getenv("NODE_ENV", "development"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# ── PostgreSQL ────────────────────────────────────────────────────────────────
# Schema defined in db/migrations/*.sql
# Apply with: python scripts/run_migrations.py
# Required on first relational use; empty means "not configured".
POSTGRES_URL: str = os.getenv("POSTGRES_URL") or os.getenv("DATABASE_URL", "")
POSTGRES_MIN_CONN: int = int(os.getenv("POSTGRES_MIN_CONN", "0"))
POSTGRES_MAX_CONN: int = int(os.getenv("POSTGRES_MAX_CONN", "20"))
# Seconds
POSTGRES_IDLE_TIMEOUT: float    = float(os.getenv("POSTGRES_IDLE_TIMEOUT",    "30"))
POSTGRES_ACQUIRE_TIMEOUT: float = float(os.getenv("POSTGRES_ACQUIRE_TIMEOUT", "2"))
POSTGRES_CONNECT_TIMEOUT: int   = int(os.getenv("POSTGRES_CONNECT_TIMEOUT",   "2"))

# ── Redis ─────────────────────────────────────────────────────────────────────
# Presence of REDIS_URL selects the key-value backend wherever the backend
# is auto-detected (db.data_access, db.unified).
REDIS_URL: str = os.getenv("REDIS_URL", "")
REDIS_CONNECT_TIMEOUT: float = float(os.getenv("REDIS_CONNECT_TIMEOUT", "10"))
