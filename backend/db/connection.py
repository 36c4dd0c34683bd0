"""
db/connection.py
-----------------
psycopg2 connection pool: singleton, shared across the process.

Usage:
    from db.connection import get_conn, execute_query

    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")

    rows = execute_query("SELECT * FROM associations WHERE id = %s", (assoc_id,))

The context manager borrows a connection from the pool, commits on clean
exit, rolls back on exception, and returns the connection to the pool.
Every query helper is its own unit of work (autocommit-style).

Pool behaviour:
    - at most POSTGRES_MAX_CONN connections
    - waiting for a free connection gives up after POSTGRES_ACQUIRE_TIMEOUT
      seconds with PoolTimeoutError
    - a connection idle for longer than POSTGRES_IDLE_TIMEOUT seconds is
      closed on its next checkout instead of being reused

Environment variables (set in config.py):
    POSTGRES_URL / DATABASE_URL   required on first use
    APP_ENV                       "production" → sslmode=require
    POSTGRES_MIN_CONN, POSTGRES_MAX_CONN, POSTGRES_IDLE_TIMEOUT,
    POSTGRES_ACQUIRE_TIMEOUT, POSTGRES_CONNECT_TIMEOUT
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Generator, Sequence

import psycopg2
import psycopg2.pool

import config
from db.errors import ConfigurationError, PoolTimeoutError

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Process-scoped owner of the Postgres connections.

    Wraps a ``ThreadedConnectionPool`` (which fails immediately when it is
    exhausted) with a bounded semaphore so that callers wait up to
    ``acquire_timeout`` seconds for a free slot, and tracks when each
    connection went idle so stale ones can be evicted.
    """

    def __init__(
        self,
        dsn: str,
        *,
        minconn: int = 0,
        maxconn: int = 20,
        idle_timeout: float = 30.0,
        acquire_timeout: float = 2.0,
        **connect_kwargs: Any,
    ) -> None:
        self.maxconn = maxconn
        self.idle_timeout = idle_timeout
        self.acquire_timeout = acquire_timeout
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn, maxconn, dsn, **connect_kwargs
        )
        self._slots = threading.BoundedSemaphore(maxconn)
        self._idle_since: dict[int, float] = {}
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return bool(self._pool.closed)

    def acquire(self):
        """Check out a connection, waiting at most ``acquire_timeout`` seconds."""
        if not self._slots.acquire(timeout=self.acquire_timeout):
            logger.warning(
                "Postgres pool exhausted: no connection free after %.1fs (max %d)",
                self.acquire_timeout, self.maxconn,
            )
            raise PoolTimeoutError(
                f"No database connection available within {self.acquire_timeout}s"
            )
        try:
            conn = self._pool.getconn()
            while self._is_stale(conn):
                self._pool.putconn(conn, close=True)
                conn = self._pool.getconn()
        except Exception:
            self._slots.release()
            raise
        return conn

    def release(self, conn, discard: bool = False) -> None:
        """Return a connection to the pool; ``discard`` closes it instead."""
        discard = discard or bool(conn.closed)
        try:
            if not discard:
                with self._lock:
                    self._idle_since[id(conn)] = time.monotonic()
            self._pool.putconn(conn, close=discard)
        finally:
            self._slots.release()

    @contextmanager
    def connection(self) -> Generator:
        """
        Context manager: borrow a connection for one unit of work.

        On success: commits.
        On exception: rolls back (unless the connection died) and re-raises.
        Always: returns the connection to the pool.
        """
        conn = self.acquire()
        broken = False
        try:
            yield conn
            conn.commit()
        except Exception:
            if conn.closed:
                broken = True
            else:
                conn.rollback()
            raise
        finally:
            self.release(conn, discard=broken)

    def shutdown(self) -> None:
        """Close every connection, idle or checked out."""
        if not self._pool.closed:
            self._pool.closeall()
        with self._lock:
            self._idle_since.clear()

    def _is_stale(self, conn) -> bool:
        with self._lock:
            since = self._idle_since.pop(id(conn), None)
        if since is None:
            return False
        return time.monotonic() - since > self.idle_timeout


# Module-level singleton; initialised lazily on first call to get_pool()
_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def _build_pool() -> ConnectionPool:
    """Create a new ConnectionPool from config values."""
    if not config.POSTGRES_URL:
        raise ConfigurationError(
            "POSTGRES_URL or DATABASE_URL environment variable is required"
        )
    connect_kwargs: dict[str, Any] = {
        "connect_timeout": config.POSTGRES_CONNECT_TIMEOUT,
    }
    if config.APP_ENV == "production":
        # TLS on, certificate not verified
        connect_kwargs["sslmode"] = "require"
    return ConnectionPool(
        config.POSTGRES_URL,
        minconn=config.POSTGRES_MIN_CONN,
        maxconn=config.POSTGRES_MAX_CONN,
        idle_timeout=config.POSTGRES_IDLE_TIMEOUT,
        acquire_timeout=config.POSTGRES_ACQUIRE_TIMEOUT,
        **connect_kwargs,
    )


def get_pool() -> ConnectionPool:
    """Return the singleton connection pool, creating it on first call."""
    global _pool
    if _pool is None or _pool.closed:
        with _pool_lock:
            if _pool is None or _pool.closed:
                _pool = _build_pool()
    return _pool


@contextmanager
def get_conn(pool: ConnectionPool | None = None) -> Generator:
    """
    Context manager: borrow a psycopg2 connection from the pool.

    Example::

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("INSERT INTO associations ...")
    """
    with (pool or get_pool()).connection() as conn:
        yield conn


def fetch_rows(cur) -> list[dict]:
    """Rows of the last statement as dicts; [] when it returned no result set."""
    if cur.description is None:
        return []
    cols = [d[0] for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


def execute_query(
    sql,
    params: Sequence[Any] | dict[str, Any] | None = None,
    pool: ConnectionPool | None = None,
) -> list[dict]:
    """Run one parameterised statement on a pooled connection; return its rows."""
    with get_conn(pool) as conn:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            return fetch_rows(cur)


def execute_query_single(
    sql,
    params: Sequence[Any] | dict[str, Any] | None = None,
    pool: ConnectionPool | None = None,
) -> dict | None:
    """Same as execute_query, returning the first row or None."""
    rows = execute_query(sql, params, pool)
    return rows[0] if rows else None


def check_connection(pool: ConnectionPool | None = None) -> dict:
    """
    Issue ``SELECT 1`` and time it.

    Returns ``{"status": "healthy", "latency": ms}`` or
    ``{"status": "unhealthy", "error": message}``; never raises.
    """
    start = time.perf_counter()
    try:
        execute_query_single("SELECT 1 AS test", pool=pool)
    except Exception as exc:
        logger.error("PostgreSQL connection test failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc) or type(exc).__name__}
    latency = round((time.perf_counter() - start) * 1000, 2)
    return {"status": "healthy", "latency": latency}


def get_connection_info() -> dict:
    """Describe the relational configuration without connecting."""
    return {
        "type":        "postgresql",
        "url":         "configured" if config.POSTGRES_URL else "not configured",
        "has_url":     bool(config.POSTGRES_URL),
        "environment": config.APP_ENV,
    }


def close_pool() -> None:
    """Close all connections in the pool (call at application shutdown)."""
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.shutdown()
        _pool = None
