"""Core module - Foundation components shared by the lock subsystem and CLI.

This module provides the basic building blocks used throughout the package:
- Version information
- Custom exceptions
- Configuration dataclass
- Constants and defaults
"""

from dblock.core.version import __version__

from dblock.core.exceptions import (
    DBLockError,
    ConfigurationError,
    LockStoreError,
    CanNotRenewError,
    LockInterruptedError,
    LockAcquisitionError,
    LockNotHeldError,
    LockOwnershipLostError,
)

from dblock.core.config import LockConfig

from dblock.core.constants import (
    DEFAULT_LEASE_TIME,
    DEFAULT_RETRY_INTERVAL,
    DEFAULT_TABLE_NAME,
    ENV_VAR_MAPPING,
    WATCHDOG_INTERVAL_DIVISOR,
)

__all__ = [
    # Version
    '__version__',
    # Exceptions
    'DBLockError',
    'ConfigurationError',
    'LockStoreError',
    'CanNotRenewError',
    'LockInterruptedError',
    'LockAcquisitionError',
    'LockNotHeldError',
    'LockOwnershipLostError',
    # Config
    'LockConfig',
    # Constants
    'DEFAULT_LEASE_TIME',
    'DEFAULT_RETRY_INTERVAL',
    'DEFAULT_TABLE_NAME',
    'ENV_VAR_MAPPING',
    'WATCHDOG_INTERVAL_DIVISOR',
]
