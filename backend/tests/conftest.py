"""
Shared fixtures for the KonBase backend test suite.

No live services: see tests/fakes.py.
"""

import os
import sys

import pytest

# Ensure backend/ and tests/ are importable
TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.dirname(TESTS_DIR)
for path in (BACKEND_DIR, TESTS_DIR):
    if path not in sys.path:
        sys.path.insert(0, path)

# Override environment BEFORE importing application modules
os.environ.pop("REDIS_URL", None)
os.environ.pop("POSTGRES_URL", None)
os.environ.pop("DATABASE_URL", None)

import config  # noqa: E402
from db import connection, data_access, redis_client, unified  # noqa: E402
from db.repositories.postgres_repo import PostgresDataAccess  # noqa: E402
from db.repositories.redis_repo import RedisDataAccess  # noqa: E402
from fakes import FakePool, FakeRedis  # noqa: E402


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """No configured backends and no leftover singletons between tests."""
    monkeypatch.setattr(config, "REDIS_URL", "")
    monkeypatch.setattr(config, "POSTGRES_URL", "")
    monkeypatch.setattr(config, "APP_ENV", "development")
    monkeypatch.setattr(connection, "_pool", None)
    monkeypatch.setattr(redis_client, "_client", None)
    monkeypatch.setattr(data_access, "_instance", None)
    monkeypatch.setattr(unified, "_unified", None)
    yield


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_dal(fake_redis):
    return RedisDataAccess(client=fake_redis)


@pytest.fixture
def fake_pool():
    return FakePool()


@pytest.fixture
def postgres_dal(fake_pool):
    return PostgresDataAccess(pool=fake_pool)
