"""In-process reentrant lock with hold counting and cancellable waits."""

from __future__ import annotations

import threading
import time

from dblock.core.constants import LOCAL_WAIT_SLICE
from dblock.core.exceptions import LockInterruptedError, LockNotHeldError


class LocalReentrantLock:
    """Reentrant mutex that exposes its owner and hold count.

    `threading.RLock` keeps both private, and its `acquire` cannot be
    cancelled from another thread. Waiters here re-check an optional
    `cancel_event` every LOCAL_WAIT_SLICE seconds.
    """

    def __init__(self, name: str):
        self.name = name
        self._cond = threading.Condition(threading.Lock())
        self._owner: int | None = None
        self._count = 0

    @property
    def hold_count(self) -> int:
        """Number of unreleased acquisitions made by the calling thread."""
        with self._cond:
            return self._count if self._owner == threading.get_ident() else 0

    def is_held_by_current_thread(self) -> bool:
        with self._cond:
            return self._owner == threading.get_ident()

    def locked(self) -> bool:
        with self._cond:
            return self._owner is not None

    def acquire(
        self,
        blocking: bool = True,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """Acquire the lock, re-entering immediately if already owned.

        Args:
            blocking: When False, make a single attempt.
            timeout: Maximum seconds to wait; None waits forever.
            cancel_event: When set, a waiting call raises LockInterruptedError.

        Returns:
            True if the lock is now held, False on timeout or a failed
            non-blocking attempt.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise LockInterruptedError(self.name, "local lock")

        me = threading.get_ident()
        deadline = None if timeout is None else time.monotonic() + max(0.0, timeout)

        with self._cond:
            if self._owner == me:
                self._count += 1
                return True

            while self._owner is not None:
                if not blocking:
                    return False
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                if cancel_event is not None:
                    remaining = LOCAL_WAIT_SLICE if remaining is None else min(remaining, LOCAL_WAIT_SLICE)
                self._cond.wait(remaining)
                if cancel_event is not None and cancel_event.is_set():
                    raise LockInterruptedError(self.name, "local lock")

            self._owner = me
            self._count = 1
            return True

    def release(self) -> None:
        with self._cond:
            if self._owner != threading.get_ident():
                raise LockNotHeldError(self.name)
            self._count -= 1
            if self._count == 0:
                self._owner = None
                self._cond.notify_all()
