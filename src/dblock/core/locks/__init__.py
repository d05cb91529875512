"""Locking subsystem for cross-process coordination.

A `DistributedLock` composes an in-process reentrant lock with a lease
held in a shared lock store and renewed by a background watchdog.
"""

from dblock.core.locks.backends import (
    InMemoryLockStore,
    LockRecord,
    LockStore,
    SqlAlchemyLockStore,
    build_lock_table,
)
from dblock.core.locks.distributed import DistributedLock
from dblock.core.locks.lease import LeaseSession, current_time_millis
from dblock.core.locks.local import LocalReentrantLock
from dblock.core.locks.provider import DistributedLockProvider
from dblock.core.locks.watchdog import WatchDog

__all__ = [
    "DistributedLock",
    "DistributedLockProvider",
    "InMemoryLockStore",
    "LeaseSession",
    "LocalReentrantLock",
    "LockRecord",
    "LockStore",
    "SqlAlchemyLockStore",
    "WatchDog",
    "build_lock_table",
    "current_time_millis",
]
