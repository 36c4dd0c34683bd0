"""
db/
----
Persistence layer for the KonBase backend.

Storage architecture (one backend per deployment, picked from config):
  PostgreSQL (psycopg2): relational store
    schema: db/migrations/NNNN_*.sql
    apply:  python scripts/run_migrations.py

  Redis (redis-py): key-value store for lightweight deployments
    key layout: db/redis_client.py

Public exports (import from here for convenience):
    from db import get_data_access, get_conn, get_redis
    from db.migrator import run_migrations, check_migrations_status
    from db.unified import get_unified_database
    from db.rls import require_association_member, has_role_or_above
"""

from db.connection import close_pool, get_conn
from db.data_access import create_data_access, get_data_access, reset_data_access
from db.redis_client import close_redis, get_redis

__all__ = [
    "get_conn", "close_pool",
    "get_redis", "close_redis",
    "create_data_access", "get_data_access", "reset_data_access",
]
