"""Distributed lock: a local reentrant lock composed with a remote lease.

The local layer serializes threads of this process and tracks reentrancy.
The remote layer (`LeaseSession`) competes with other processes through
conditional writes on the lock store. Only the outermost acquisition on a
thread touches the store; nested acquisitions just bump the hold count.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import NoReturn

from dblock.core.constants import DEFAULT_LEASE_TIME, DEFAULT_RETRY_INTERVAL, WATCHDOG_INTERVAL_DIVISOR
from dblock.core.exceptions import (
    LockAcquisitionError,
    LockInterruptedError,
    LockNotHeldError,
    LockOwnershipLostError,
)
from dblock.core.locks.backends import LockStore
from dblock.core.locks.lease import LeaseSession
from dblock.core.locks.local import LocalReentrantLock
from dblock.core.locks.watchdog import WatchDog
from dblock.core.logging import with_log_context

logger = logging.getLogger(__name__)


class DistributedLock:
    """Reentrant mutual-exclusion lock shared across processes.

    Example:
        >>> lock = DistributedLock("job-42", store, lease_time=10)
        >>> with lock:
        ...     run_job()

    Args:
        lock_key: Name of the protected resource.
        store: Backing store shared by every process competing for the key.
        lease_time: Lease in seconds used when a call does not pass one (default: 60).
        retry_interval: Seconds between store attempts while waiting (default: 5).
        on_lease_lost: Called with the lock key, on the watchdog thread, when
            renewal discovers the lease is gone.
    """

    def __init__(
        self,
        lock_key: str,
        store: LockStore,
        *,
        lease_time: float = DEFAULT_LEASE_TIME,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        on_lease_lost: Callable[[str], None] | None = None,
    ):
        if lease_time <= 0:
            raise ValueError(f"lease_time must be positive, got {lease_time}")
        if retry_interval <= 0:
            raise ValueError(f"retry_interval must be positive, got {retry_interval}")

        self.lock_key = lock_key
        self.store = store
        self.lease_time = lease_time
        self.retry_interval = retry_interval
        self.on_lease_lost = on_lease_lost

        self._local = LocalReentrantLock(lock_key)
        self._lease: LeaseSession | None = None
        self._watchdog: WatchDog | None = None
        self._lease_lost = threading.Event()
        self._lease_lost_reason: str | None = None
        self._log = with_log_context(logger, lock_key=lock_key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(lock_key={self.lock_key!r}, locked={self.locked()})"

    # ---------- state ----------

    @property
    def hold_count(self) -> int:
        return self._local.hold_count

    @property
    def lease_lost(self) -> bool:
        """True once the watchdog found the current lease can no longer be renewed."""
        return self._lease_lost.is_set()

    @property
    def lease_version(self) -> int | None:
        lease = self._lease
        return lease.version if lease is not None else None

    def locked(self) -> bool:
        return self._local.locked()

    def is_held_by_current_thread(self) -> bool:
        return self._local.is_held_by_current_thread()

    def ensure_held(self) -> None:
        """Raise unless the calling thread holds the lock and its lease is intact."""
        if not self._local.is_held_by_current_thread():
            raise LockNotHeldError(self.lock_key)
        if self._lease_lost.is_set():
            raise LockOwnershipLostError(self.lock_key, reason=self._lease_lost_reason)

    # ---------- acquisition ----------

    def lock(self, lease_time: float | None = None) -> None:
        """Block until the lock is held. Cannot be cancelled."""
        self._local.acquire()
        try:
            self._acquire(lease_time, wait=True)
        except Exception as e:
            self._local.release()
            raise LockAcquisitionError(self.lock_key, e) from e
        except BaseException:
            self._local.release()
            raise

    def lock_interruptibly(
        self,
        lease_time: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Block until the lock is held or `cancel_event` is set.

        Raises:
            LockInterruptedError: `cancel_event` was set while waiting.
        """
        self._local.acquire(cancel_event=cancel_event)
        try:
            self._acquire(lease_time, wait=True, cancel_event=cancel_event)
        except LockInterruptedError:
            self._local.release()
            raise
        except Exception as e:
            self._local.release()
            raise LockAcquisitionError(self.lock_key, e) from e
        except BaseException:
            self._local.release()
            raise

    def try_lock(
        self,
        wait_time: float | None = None,
        lease_time: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """Try to take the lock, waiting at most `wait_time` seconds.

        With no `wait_time` this makes a single store attempt and never
        sleeps. Otherwise it retries every `retry_interval` seconds until the
        wait budget runs out.

        Raises:
            LockInterruptedError: `cancel_event` was set while waiting.
        """
        if wait_time is None:
            return self._try_lock_once(lease_time)

        started = time.monotonic()
        if not self._local.acquire(timeout=wait_time, cancel_event=cancel_event):
            return False

        remaining = wait_time - (time.monotonic() - started)
        acquired = False
        try:
            acquired = self._acquire(lease_time, wait=True, timeout=remaining, cancel_event=cancel_event)
        except LockInterruptedError:
            raise
        except Exception as e:
            self._log.error("Unexpected error while acquiring lock: %s", e, exc_info=True)
        finally:
            if not acquired:
                self._local.release()
        return acquired

    def _try_lock_once(self, lease_time: float | None) -> bool:
        if not self._local.acquire(blocking=False):
            return False
        acquired = False
        try:
            acquired = self._acquire(lease_time, wait=False)
        except Exception as e:
            self._log.error("Unexpected error while acquiring lock: %s", e, exc_info=True)
        finally:
            if not acquired:
                self._local.release()
        return acquired

    def _acquire(
        self,
        lease_time: float | None,
        *,
        wait: bool,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        if not self._local.is_held_by_current_thread():
            raise LockNotHeldError(self.lock_key)
        if self._local.hold_count > 1:
            return True

        lease_time = self.lease_time if lease_time is None else lease_time
        if lease_time <= 0:
            raise ValueError(f"lease_time must be positive, got {lease_time}")
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            lease = LeaseSession(self.store, self.lock_key)
            if lease.try_acquire(lease_time):
                self._lease = lease
                self._lease_lost.clear()
                self._lease_lost_reason = None
                try:
                    self._enable_watchdog(lease, lease_time)
                except BaseException:
                    self._lease = None
                    lease.try_release()
                    raise
                self._log.debug("Acquired lease at version %s for %.3fs", lease.version, lease_time)
                return True

            if not wait:
                return False

            pause = self.retry_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._log.debug("Gave up waiting for lease after %.3fs", timeout)
                    return False
                pause = min(pause, remaining)

            if cancel_event is None:
                time.sleep(pause)
            elif cancel_event.wait(pause):
                raise LockInterruptedError(self.lock_key, "lease")

    def _enable_watchdog(self, lease: LeaseSession, lease_time: float) -> None:
        watchdog = WatchDog(name=f"lock-watchdog-{self.lock_key}", on_give_up=self._handle_lease_lost)
        watchdog.start(lambda: lease.try_renew(lease_time), lease_time / WATCHDOG_INTERVAL_DIVISOR)
        self._watchdog = watchdog

    def _handle_lease_lost(self, error: Exception) -> None:
        self._lease_lost_reason = str(error)
        self._lease_lost.set()
        self._log.error("Lease renewal stopped; lock may be held elsewhere (%s)", error)
        if self.on_lease_lost is not None:
            self.on_lease_lost(self.lock_key)

    # ---------- release ----------

    def unlock(self) -> None:
        """Release one hold; the final hold stops renewal and deletes the lease.

        The local lock is always released, even when stopping the watchdog or
        deleting the record fails.

        Raises:
            LockNotHeldError: The calling thread does not hold the lock.
        """
        if not self._local.is_held_by_current_thread():
            raise LockNotHeldError(self.lock_key)

        try:
            if self._local.hold_count == 1:
                watchdog, lease = self._watchdog, self._lease
                self._watchdog = None
                self._lease = None
                if watchdog is not None:
                    try:
                        watchdog.stop()
                    except Exception as e:
                        self._log.error("Failed to stop watchdog: %s", e, exc_info=True)
                if lease is not None:
                    try:
                        lease.try_release()
                    except Exception as e:
                        self._log.error("Failed to release lease: %s", e, exc_info=True)
        finally:
            self._local.release()

    def new_condition(self) -> NoReturn:
        """Conditions are not supported; always raises NotImplementedError."""
        raise NotImplementedError("DistributedLock does not support conditions")

    # ---------- threading.Lock-compatible surface ----------

    def acquire(self, blocking: bool = True, timeout: float = -1) -> bool:
        if not blocking:
            return self.try_lock()
        if timeout is None or timeout < 0:
            self.lock()
            return True
        return self.try_lock(wait_time=timeout)

    def release(self) -> None:
        self.unlock()

    def __enter__(self) -> DistributedLock:
        self.lock()
        return self

    def __exit__(self, *args, **kwargs) -> None:
        self.unlock()
