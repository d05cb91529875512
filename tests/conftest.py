"""Pytest configuration and fixtures for dblock tests"""
import time

import pytest

from dblock.core.locks.backends import InMemoryLockStore, LockRecord, SqlAlchemyLockStore
from dblock.core.locks.lease import current_time_millis
from dblock.core.locks.provider import DistributedLockProvider

# Short timings keep the lock protocol observable within a test run
FAST_LEASE = 0.6
FAST_RETRY = 0.05


@pytest.fixture
def memory_store():
    """Create an empty in-memory lock store"""
    return InMemoryLockStore()


@pytest.fixture
def sqlite_url(tmp_path):
    """SQLite database file in a temporary directory"""
    return f"sqlite:///{tmp_path / 'locks.db'}"


@pytest.fixture
def sqlite_store(sqlite_url):
    """Create a SQLAlchemy lock store with its table already created"""
    store = SqlAlchemyLockStore.from_url(sqlite_url)
    store.create_schema()
    yield store
    store.dispose()


@pytest.fixture
def provider(memory_store):
    """Lock provider over the in-memory store with fast timings"""
    return DistributedLockProvider(memory_store, lease_time=FAST_LEASE, retry_interval=FAST_RETRY)


@pytest.fixture
def foreign_holder(memory_store):
    """Plant a record held by another process, expiring after `seconds`"""

    def _plant(lock_key: str, seconds: float = 3600.0, version: int = 1) -> LockRecord:
        record = LockRecord(lock_key, version, current_time_millis() + int(seconds * 1000))
        memory_store.put(record)
        return record

    return _plant


def wait_until(predicate, timeout: float = 3.0, interval: float = 0.02) -> bool:
    """Poll `predicate` until it is true or `timeout` elapses"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
