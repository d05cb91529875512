"""Lease session: one acquisition's view of a lock record.

The session remembers the record version it last wrote successfully and
uses it as a compare-and-swap token for renewal and release. Store failures
never escape this module except as `CanNotRenewError` from `try_renew`;
everything else turns into a False result.
"""

from __future__ import annotations

import logging
import time

from dblock.core.constants import INITIAL_VERSION
from dblock.core.exceptions import CanNotRenewError, LockStoreError
from dblock.core.locks.backends import LockStore
from dblock.core.logging import with_log_context

logger = logging.getLogger(__name__)


def current_time_millis() -> int:
    return int(time.time() * 1000)


def to_millis(seconds: float) -> int:
    return int(seconds * 1000)


class LeaseSession:
    """Acquire, renew and release one lease on `lock_key`."""

    def __init__(self, store: LockStore, lock_key: str):
        self.store = store
        self.lock_key = lock_key
        self.version: int | None = None
        self._log = with_log_context(logger, lock_key=lock_key)

    @property
    def acquired(self) -> bool:
        return self.version is not None

    def try_acquire(self, lease_time: float) -> bool:
        """Make one attempt to take the lease for `lease_time` seconds.

        Creates the record when absent and takes over a record whose expiry
        has passed. A live record held by anyone else fails the attempt.
        """
        try:
            return self._try_acquire(to_millis(lease_time))
        except LockStoreError as e:
            self._log.error("Failed to acquire lock: %s", e, exc_info=True)
            return False

    def _try_acquire(self, lease_millis: int) -> bool:
        now = current_time_millis()
        record = self.store.read(self.lock_key)

        if record is None:
            if self.store.insert(self.lock_key, now + lease_millis):
                self.version = INITIAL_VERSION
                self._log.debug("Created lock record at version %d", self.version)
                return True
            return False

        if not record.is_expired(now):
            return False

        if self.store.update(self.lock_key, record.version, now + lease_millis) > 0:
            self.version = record.version + 1
            self._log.info(
                "Took over expired lease (expired %d ms ago), now at version %d",
                now - record.expired_time,
                self.version,
            )
            return True
        return False

    def try_renew(self, extend_by: float) -> bool:
        """Push the expiry to now + `extend_by` seconds.

        Raises:
            CanNotRenewError: The record is gone or was taken over, so no
                later renewal can succeed either.
        """
        if self.version is None:
            raise CanNotRenewError(f"Lease on '{self.lock_key}' was never acquired")

        try:
            affected = self.store.update(self.lock_key, self.version, current_time_millis() + to_millis(extend_by))
        except LockStoreError as e:
            self._log.error("Failed to renew lock: %s", e, exc_info=True)
            return False

        if affected == 0:
            self._log.warning("Lock record at version %d no longer exists; renewal stopped", self.version)
            raise CanNotRenewError(f"No lock record for '{self.lock_key}' at version {self.version}")

        self.version += 1
        self._log.debug("Renewed lease, now at version %d", self.version)
        return True

    def try_release(self) -> bool:
        """Delete the record if it is still at our version. Never raises."""
        if self.version is None:
            return False

        try:
            affected = self.store.delete(self.lock_key, self.version)
        except LockStoreError as e:
            self._log.error("Failed to release lock: %s", e, exc_info=True)
            return False

        if affected == 0:
            # Expired and taken over, or the record was edited by hand.
            self._log.warning("No lock record at version %d to delete on release", self.version)
            return False

        self._log.debug("Released lease at version %d", self.version)
        return True
