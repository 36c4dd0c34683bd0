"""
db/redis_client.py
-------------------
redis-py client: singleton, shared across the process.

The first get_redis() PINGs the server: an unreachable server surfaces
there as redis.exceptions.ConnectionError and nothing is cached, so the
next call tries again.

Key layout used by the key-value data-access implementation
(db/repositories/redis_repo.py):

  users:{id}                       Hash   (fields JSON-encoded)
  profiles:{user_id}               Hash   (fields JSON-encoded)
  associations:{id}                String (JSON)
  association_members:{id}         String (JSON)
  conventions:{id}                 String (JSON)
  convention_members:{id}          String (JSON)
  items:{id}                       String (JSON)
  equipment_sets:{id}              String (JSON)
  equipment_set_items:{set_id}     Hash   item_id -> quantity
  audit_logs:{id}                  String (JSON)
  system_settings:{key}            String (raw value)
  idx:{collection}:{field}:{value} String (id of the indexed record)

Environment variables (set in config.py):
    REDIS_URL               required on first use
    REDIS_CONNECT_TIMEOUT   default: 10 (seconds)
"""

from __future__ import annotations

import logging
import time

import redis

import config
from db.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Module-level singleton; initialised lazily on first call to get_redis()
_client: redis.Redis | None = None


def get_redis() -> redis.Redis:
    """Return the singleton Redis client, creating it on first call."""
    global _client
    if _client is None:
        if not config.REDIS_URL:
            raise ConfigurationError(
                "REDIS_URL environment variable is required for Redis connection"
            )
        client = redis.Redis.from_url(
            config.REDIS_URL,
            decode_responses=True,   # return str, not bytes
            socket_connect_timeout=config.REDIS_CONNECT_TIMEOUT,
        )
        try:
            client.ping()
        except redis.exceptions.RedisError as exc:
            logger.error("Redis connection failed: %s", exc)
            client.close()
            raise
        _client = client
    return _client


def ping() -> bool:
    return bool(get_redis().ping())


def is_redis_configured() -> bool:
    return bool(config.REDIS_URL)


def check_redis_connection(client: redis.Redis | None = None) -> dict:
    """PING the server and time it; never raises."""
    start = time.perf_counter()
    try:
        (client or get_redis()).ping()
    except Exception as exc:
        logger.error("Redis connection test failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc) or type(exc).__name__}
    latency = round((time.perf_counter() - start) * 1000, 2)
    return {"status": "healthy", "latency": latency}


def get_redis_connection_info() -> dict:
    """Describe the key-value configuration without connecting."""
    return {
        "type":    "redis",
        "url":     "configured" if config.REDIS_URL else "not configured",
        "has_url": bool(config.REDIS_URL),
    }


def close_redis() -> None:
    """Close the client's sockets and drop the singleton."""
    global _client
    if _client is not None:
        _client.close()
    _client = None
