"""Tests for the lease session compare-and-swap protocol."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from dblock.core.exceptions import CanNotRenewError, LockStoreError
from dblock.core.locks.backends import LockRecord
from dblock.core.locks.lease import LeaseSession, current_time_millis


def test_acquire_creates_missing_record(memory_store) -> None:
    session = LeaseSession(memory_store, "job-42")
    before = current_time_millis()

    assert session.try_acquire(10) is True

    record = memory_store.read("job-42")
    assert session.version == 1
    assert record.version == 1
    assert before + 10_000 <= record.expired_time <= current_time_millis() + 10_000


def test_acquire_fails_while_lease_is_live(memory_store, foreign_holder) -> None:
    foreign_holder("job-42", seconds=60)
    session = LeaseSession(memory_store, "job-42")

    assert session.try_acquire(10) is False
    assert session.version is None
    assert session.acquired is False


def test_acquire_takes_over_expired_lease(memory_store) -> None:
    memory_store.put(LockRecord("job-42", 7, current_time_millis() - 1))
    session = LeaseSession(memory_store, "job-42")

    assert session.try_acquire(10) is True

    assert session.version == 8
    assert memory_store.read("job-42").version == 8
    assert memory_store.read("job-42").expired_time > current_time_millis()


def test_takeover_race_loser_with_stale_version_fails(memory_store) -> None:
    memory_store.put(LockRecord("job-42", 3, current_time_millis() - 1))
    winner = LeaseSession(memory_store, "job-42")
    loser = LeaseSession(memory_store, "job-42")
    stale = memory_store.read("job-42")

    assert winner.try_acquire(10) is True

    # The loser observed the same expired record before the winner wrote.
    with patch.object(memory_store, "read", return_value=stale):
        assert loser.try_acquire(10) is False
    assert loser.version is None
    assert memory_store.read("job-42").version == 4


def test_concurrent_insert_loser_fails(memory_store) -> None:
    session = LeaseSession(memory_store, "job-42")
    memory_store.insert("job-42", current_time_millis() + 60_000)

    with patch.object(memory_store, "read", return_value=None):
        assert session.try_acquire(10) is False


def test_store_failure_during_acquire_is_a_failed_attempt(memory_store) -> None:
    session = LeaseSession(memory_store, "job-42")

    with patch.object(memory_store, "read", side_effect=LockStoreError("down", operation="read")):
        assert session.try_acquire(10) is False
    assert session.version is None


def test_renew_bumps_version_and_extends_expiry(memory_store) -> None:
    session = LeaseSession(memory_store, "job-42")
    session.try_acquire(1)
    first = memory_store.read("job-42")

    assert session.try_renew(10) is True

    renewed = memory_store.read("job-42")
    assert session.version == 2
    assert renewed.version == 2
    assert renewed.expired_time > first.expired_time


def test_renew_after_takeover_cannot_succeed(memory_store) -> None:
    session = LeaseSession(memory_store, "job-42")
    session.try_acquire(1)
    memory_store.put(LockRecord("job-42", 5, current_time_millis() + 60_000))

    with pytest.raises(CanNotRenewError):
        session.try_renew(1)
    assert session.version == 1


def test_renew_after_record_deleted_cannot_succeed(memory_store) -> None:
    session = LeaseSession(memory_store, "job-42")
    session.try_acquire(1)
    memory_store.delete("job-42", 1)

    with pytest.raises(CanNotRenewError):
        session.try_renew(1)


def test_renew_store_failure_is_retryable(memory_store) -> None:
    session = LeaseSession(memory_store, "job-42")
    session.try_acquire(1)

    with patch.object(memory_store, "update", side_effect=LockStoreError("down", operation="update")):
        assert session.try_renew(1) is False
    assert session.version == 1
    assert session.try_renew(1) is True


def test_renew_without_acquire_raises(memory_store) -> None:
    with pytest.raises(CanNotRenewError):
        LeaseSession(memory_store, "job-42").try_renew(1)


def test_release_deletes_record_at_current_version(memory_store) -> None:
    session = LeaseSession(memory_store, "job-42")
    session.try_acquire(1)
    session.try_renew(1)

    assert session.try_release() is True
    assert memory_store.read("job-42") is None


def test_release_of_taken_over_record_is_logged_not_raised(memory_store, caplog) -> None:
    session = LeaseSession(memory_store, "job-42")
    session.try_acquire(1)
    memory_store.put(LockRecord("job-42", 9, current_time_millis() + 60_000))

    with caplog.at_level("WARNING"):
        assert session.try_release() is False

    assert memory_store.read("job-42").version == 9
    assert "No lock record at version 1" in caplog.text


def test_release_store_failure_returns_false(memory_store) -> None:
    session = LeaseSession(memory_store, "job-42")
    session.try_acquire(1)

    with patch.object(memory_store, "delete", side_effect=LockStoreError("down", operation="delete")):
        assert session.try_release() is False


def test_release_without_acquire_is_noop(memory_store) -> None:
    assert LeaseSession(memory_store, "job-42").try_release() is False


def test_version_increments_by_one_per_successful_write(sqlite_store) -> None:
    session = LeaseSession(sqlite_store, "job-42")
    session.try_acquire(1)
    versions = [sqlite_store.read("job-42").version]

    for _ in range(5):
        session.try_renew(1)
        versions.append(sqlite_store.read("job-42").version)

    assert versions == [1, 2, 3, 4, 5, 6]
    assert session.try_release() is True
