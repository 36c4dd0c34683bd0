"""
db/unified.py
-------------
Narrow key-based read interface over either backend, for serverless
handlers that only need to fetch a record or a collection.

Keys:
    RedisAdapter     get("associations:<id>")   → decoded value (JSON string or hash)
                     get_by_prefix("associations") → every "associations:*" value
    PostgresAdapter  get("associations:<id>")   → row with that id
                     get("associations")        → first row of the table
                     get_by_prefix("associations") → every row of the table

get() / get_by_prefix() propagate backend errors; is_available() and
health_check() never raise.

Usage inside one invocation:
    with unified_database() as db:
        assoc = db.get(f"associations:{assoc_id}")
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Generator

import redis
from psycopg2 import sql

import config
from db.connection import ConnectionPool, execute_query, execute_query_single
from db.redis_client import get_redis
from db.repositories.base import BackendType

logger = logging.getLogger(__name__)


class DatabaseAdapter(ABC):

    @abstractmethod
    def get(self, key: str) -> Any | None: ...

    @abstractmethod
    def get_by_prefix(self, prefix: str) -> list[Any]: ...

    def get_all(self, collection: str) -> list[Any]:
        return self.get_by_prefix(collection)

    @abstractmethod
    def _probe(self) -> None: ...

    def is_available(self) -> bool:
        try:
            self._probe()
        except Exception as exc:
            logger.warning("%s unavailable: %s", type(self).__name__, exc)
            return False
        return True

    def health_check(self) -> dict:
        start = time.perf_counter()
        try:
            self._probe()
        except Exception as exc:
            logger.error("%s health check failed: %s", type(self).__name__, exc)
            return {"status": "unhealthy"}
        latency = round((time.perf_counter() - start) * 1000, 2)
        return {"status": "healthy", "latency": latency}


class RedisAdapter(DatabaseAdapter):
    """
    Values are JSON strings, or hashes with JSON-encoded fields (users,
    profiles); a prefix lists ``<prefix>:*``.
    """

    def __init__(self, client: redis.Redis | None = None) -> None:
        self._client = client if client is not None else get_redis()

    def get(self, key: str) -> Any | None:
        kind = self._client.type(key)
        if kind == "hash":
            data = self._client.hgetall(key)
            return {field: json.loads(value) for field, value in data.items()} or None
        if kind == "string":
            raw = self._client.get(key)
            return json.loads(raw) if raw else None
        return None

    def get_by_prefix(self, prefix: str) -> list[Any]:
        values = []
        for key in self._client.keys(f"{prefix}:*"):
            value = self.get(key)
            if value is not None:
                values.append(value)
        return values

    def _probe(self) -> None:
        self._client.ping()


class PostgresAdapter(DatabaseAdapter):
    """Keys are ``<table>`` or ``<table>:<id>``; the table name is quoted."""

    def __init__(self, pool: ConnectionPool | None = None) -> None:
        self._pool = pool

    def get(self, key: str) -> dict | None:
        table, _, record_id = key.partition(":")
        if record_id:
            # id::text so non-uuid keys miss instead of failing the cast
            query = sql.SQL("SELECT * FROM {} WHERE id::text = %s").format(
                sql.Identifier(table)
            )
            return execute_query_single(query, (record_id,), pool=self._pool)
        query = sql.SQL("SELECT * FROM {} LIMIT 1").format(sql.Identifier(table))
        return execute_query_single(query, pool=self._pool)

    def get_by_prefix(self, prefix: str) -> list[dict]:
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(prefix))
        return execute_query(query, pool=self._pool)

    def _probe(self) -> None:
        execute_query_single("SELECT 1", pool=self._pool)


class UnifiedDatabaseAdapter(DatabaseAdapter):
    """Delegates to the adapter for ``adapter_type``, chosen at construction."""

    def __init__(
        self,
        adapter_type: BackendType = "postgresql",
        adapter: DatabaseAdapter | None = None,
    ) -> None:
        if adapter_type not in ("postgresql", "redis"):
            raise ValueError(f"Unknown database type: {adapter_type!r}")
        self.adapter_type = adapter_type
        if adapter is None:
            adapter = RedisAdapter() if adapter_type == "redis" else PostgresAdapter()
        self._adapter = adapter

    def get(self, key: str) -> Any | None:
        return self._adapter.get(key)

    def get_by_prefix(self, prefix: str) -> list[Any]:
        return self._adapter.get_by_prefix(prefix)

    def get_all(self, collection: str) -> list[Any]:
        return self._adapter.get_all(collection)

    def _probe(self) -> None:
        self._adapter._probe()

    def is_available(self) -> bool:
        return self._adapter.is_available()

    def health_check(self) -> dict:
        return self._adapter.health_check()

    def get_adapter_type(self) -> BackendType:
        return self.adapter_type


def create_database_adapter() -> UnifiedDatabaseAdapter:
    """REDIS_URL set → redis, otherwise postgresql."""
    return UnifiedDatabaseAdapter("redis" if config.REDIS_URL else "postgresql")


# Cached per process; a warm serverless instance reuses it across invocations
_unified: UnifiedDatabaseAdapter | None = None


def get_unified_database() -> UnifiedDatabaseAdapter:
    global _unified
    if _unified is None:
        _unified = create_database_adapter()
    return _unified


def cleanup_unified_database() -> None:
    global _unified
    _unified = None


@contextmanager
def unified_database() -> Generator[UnifiedDatabaseAdapter, None, None]:
    """Scope one invocation: build or reuse the adapter, drop the cache after."""
    try:
        yield get_unified_database()
    finally:
        cleanup_unified_database()
