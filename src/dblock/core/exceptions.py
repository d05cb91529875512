"""Custom exceptions for dblock.

Store-level failures are converted to boolean results inside the lease
session; only the exceptions below ever reach application code.
"""


class DBLockError(Exception):
    """Base exception for all dblock errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(DBLockError):
    """Exception raised for invalid configuration values.

    Examples:
        - Non-positive lease or retry interval
        - Empty table name
        - Missing database URL where one is required
    """

    def __init__(self, message: str, field: str | None = None, details: str | None = None):
        self.field = field
        super().__init__(message, details)


class LockStoreError(DBLockError):
    """Exception raised when the backing store cannot complete an operation.

    Wraps driver/connectivity errors with the operation and lock key that
    failed. The lease session converts this into a failed attempt.
    """

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        lock_key: str | None = None,
        original_error: Exception | None = None,
    ):
        self.operation = operation
        self.lock_key = lock_key
        self.original_error = original_error
        details = str(original_error) if original_error is not None else None
        super().__init__(message, details)

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.append(f"during {self.operation}")
        if self.lock_key:
            parts.append(f"key '{self.lock_key}'")
        if self.details:
            parts.append(self.details)
        return " - ".join(parts)


class CanNotRenewError(DBLockError):
    """Raised when a renewal can never succeed again.

    The watchdog catches this and stops renewing for good.
    """


class LockInterruptedError(DBLockError):
    """Raised when a cancellable acquisition is cancelled while waiting."""

    def __init__(self, lock_key: str, phase: str):
        self.lock_key = lock_key
        self.phase = phase
        super().__init__(f"Acquisition of lock '{lock_key}' was interrupted", f"while waiting for {phase}")


class LockAcquisitionError(DBLockError):
    """Raised when a blocking acquisition fails for an unexpected reason."""

    def __init__(self, lock_key: str, original_error: Exception | None = None):
        self.lock_key = lock_key
        self.original_error = original_error
        details = str(original_error) if original_error is not None else None
        super().__init__(f"Unable to acquire lock '{lock_key}'", details)


class LockNotHeldError(DBLockError, RuntimeError):
    """Raised when a thread releases a lock it does not hold."""

    def __init__(self, lock_key: str):
        self.lock_key = lock_key
        super().__init__(f"Current thread does not hold lock '{lock_key}'")


class LockOwnershipLostError(DBLockError):
    """Raised when a held lease was lost after acquisition.

    Attributes:
        lock_key: Key of the lock whose lease was lost
        reason: Why the lease is known to be lost
    """

    def __init__(self, lock_key: str, reason: str | None = None):
        self.lock_key = lock_key
        self.reason = reason
        super().__init__(f"Lease for lock '{lock_key}' is no longer held", reason)
