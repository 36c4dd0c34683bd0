"""
db/errors.py
------------
Exception types raised by the data layer.

Backend-native errors (psycopg2.Error, redis.RedisError) are not wrapped;
these cover the cases the data layer itself detects.
"""

from __future__ import annotations


class DataAccessError(Exception):
    """Base class for errors raised by the data layer itself."""


class ConfigurationError(DataAccessError):
    """A required connection string is missing."""


class PoolTimeoutError(DataAccessError):
    """No pooled connection became free within the acquisition timeout."""


class UnsupportedOperationError(DataAccessError):
    """The operation is not available on the selected backend."""


class UniqueViolationError(DataAccessError):
    """A unique secondary index already holds the value (key-value backend)."""

    def __init__(self, index_key: str) -> None:
        super().__init__(f"Unique index already taken: {index_key}")
        self.index_key = index_key


class MigrationError(DataAccessError):
    """A migration failed; earlier migrations of the run stay applied."""

    def __init__(
        self,
        version: str,
        name: str,
        message: str,
        applied: list[str] | None = None,
    ) -> None:
        super().__init__(f"Migration {version} ({name}) failed: {message}")
        self.version = version
        self.name = name
        self.applied = list(applied or [])


class ForbiddenError(DataAccessError):
    """The profile is not a member of the association."""
