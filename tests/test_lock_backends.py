"""Tests for lock store backends."""

from __future__ import annotations

import threading

import pytest
from sqlalchemy import inspect

from dblock.core.exceptions import LockStoreError
from dblock.core.locks.backends import InMemoryLockStore, LockRecord, SqlAlchemyLockStore


@pytest.fixture(params=["memory", "sqlalchemy"])
def store(request, sqlite_store):
    if request.param == "memory":
        return InMemoryLockStore()
    return sqlite_store


def test_read_missing_key_returns_none(store) -> None:
    assert store.read("absent") is None


def test_insert_creates_record_at_version_one(store) -> None:
    assert store.insert("job-1", 5_000) is True

    assert store.read("job-1") == LockRecord("job-1", 1, 5_000)


def test_insert_existing_key_loses_race(store) -> None:
    assert store.insert("job-1", 5_000) is True

    assert store.insert("job-1", 9_000) is False
    assert store.read("job-1") == LockRecord("job-1", 1, 5_000)


def test_update_bumps_version_when_expected_version_matches(store) -> None:
    store.insert("job-1", 5_000)

    assert store.update("job-1", 1, 7_000) == 1
    assert store.read("job-1") == LockRecord("job-1", 2, 7_000)

    assert store.update("job-1", 2, 8_000) == 1
    assert store.read("job-1") == LockRecord("job-1", 3, 8_000)


def test_update_with_stale_version_affects_nothing(store) -> None:
    store.insert("job-1", 5_000)
    store.update("job-1", 1, 7_000)

    assert store.update("job-1", 1, 9_000) == 0
    assert store.read("job-1") == LockRecord("job-1", 2, 7_000)


def test_update_missing_key_affects_nothing(store) -> None:
    assert store.update("absent", 1, 9_000) == 0


def test_delete_requires_matching_version(store) -> None:
    store.insert("job-1", 5_000)
    store.update("job-1", 1, 7_000)

    assert store.delete("job-1", 1) == 0
    assert store.read("job-1") is not None

    assert store.delete("job-1", 2) == 1
    assert store.read("job-1") is None
    assert store.delete("job-1", 2) == 0


def test_list_records_is_sorted_by_key(store) -> None:
    store.insert("b", 2_000)
    store.insert("a", 1_000)

    assert [record.lock_key for record in store.list_records()] == ["a", "b"]


def test_record_expiry_boundary_is_inclusive() -> None:
    record = LockRecord("job-1", 1, 1_000)

    assert record.is_expired(999) is False
    assert record.is_expired(1_000) is True
    assert record.to_dict() == {"lock_key": "job-1", "version": 1, "expired_time": 1_000}


def test_memory_store_concurrent_updates_have_single_winner() -> None:
    store = InMemoryLockStore()
    store.insert("job-1", 0)
    barrier = threading.Barrier(8)
    results: list[int] = []
    results_lock = threading.Lock()

    def _race() -> None:
        barrier.wait()
        affected = store.update("job-1", 1, 10_000)
        with results_lock:
            results.append(affected)

    threads = [threading.Thread(target=_race) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert sorted(results) == [0] * 7 + [1]
    assert store.read("job-1").version == 2


def test_sqlalchemy_create_schema_is_idempotent(sqlite_url) -> None:
    store = SqlAlchemyLockStore.from_url(sqlite_url, table_name="app_locks")
    try:
        store.create_schema()
        store.create_schema()

        columns = {column["name"] for column in inspect(store.engine).get_columns("app_locks")}
        assert columns == {"lock_key", "version", "expired_time"}
    finally:
        store.dispose()


def test_sqlalchemy_store_wraps_driver_errors(sqlite_url) -> None:
    store = SqlAlchemyLockStore.from_url(sqlite_url, table_name="never_created")
    try:
        with pytest.raises(LockStoreError) as exc_info:
            store.read("job-1")

        assert exc_info.value.operation == "read"
        assert exc_info.value.lock_key == "job-1"
        assert exc_info.value.original_error is not None

        with pytest.raises(LockStoreError):
            store.update("job-1", 1, 1_000)
        with pytest.raises(LockStoreError):
            store.delete("job-1", 1)
        with pytest.raises(LockStoreError):
            store.insert("job-1", 1_000)
    finally:
        store.dispose()


def test_sqlalchemy_stores_share_records_through_the_database(sqlite_url, sqlite_store) -> None:
    other = SqlAlchemyLockStore.from_url(sqlite_url)
    try:
        assert sqlite_store.insert("job-1", 5_000) is True
        assert other.insert("job-1", 5_000) is False
        assert other.update("job-1", 1, 6_000) == 1
        assert sqlite_store.read("job-1") == LockRecord("job-1", 2, 6_000)
    finally:
        other.dispose()
