"""
dblock - Distributed locks on a shared database table

Reentrant, lease-based mutual exclusion across processes. Leases are
acquired with conditional writes against a lock table and kept alive by a
background watchdog while held.
"""

from dblock.core.exceptions import (
    CanNotRenewError,
    ConfigurationError,
    DBLockError,
    LockAcquisitionError,
    LockInterruptedError,
    LockNotHeldError,
    LockOwnershipLostError,
    LockStoreError,
)
from dblock.core.config import LockConfig
from dblock.core.locks import (
    DistributedLock,
    DistributedLockProvider,
    InMemoryLockStore,
    LockRecord,
    LockStore,
    SqlAlchemyLockStore,
)
from dblock.core.version import __version__

__all__ = [
    "__version__",
    "CanNotRenewError",
    "ConfigurationError",
    "DBLockError",
    "DistributedLock",
    "DistributedLockProvider",
    "InMemoryLockStore",
    "LockAcquisitionError",
    "LockConfig",
    "LockInterruptedError",
    "LockNotHeldError",
    "LockOwnershipLostError",
    "LockRecord",
    "LockStore",
    "LockStoreError",
    "SqlAlchemyLockStore",
]
