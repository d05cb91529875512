"""Constants and default values for dblock.

This module centralizes the protocol timings, table layout and environment
variable names used throughout the package.
"""

# ==================== LEASE TIMINGS ====================

DEFAULT_LEASE_TIME: float = 60.0  # Lease duration in seconds when none is given
DEFAULT_RETRY_INTERVAL: float = 5.0  # Backoff between store attempts while waiting
WATCHDOG_INTERVAL_DIVISOR: int = 3  # Watchdog renews every lease / 3
WATCHDOG_JOIN_TIMEOUT: float | None = None  # stop() waits until the thread exits
LOCAL_WAIT_SLICE: float = 0.05  # Poll interval for cancellable local waits

# ==================== STORE LAYOUT ====================

DEFAULT_TABLE_NAME: str = "distributed_lock"
LOCK_KEY_MAX_LENGTH: int = 255
INITIAL_VERSION: int = 1

# ==================== LOGGING DEFAULTS ====================

DEFAULT_LOG_LEVEL: str = "INFO"
DEFAULT_LOG_FORMAT: str = "text"
LOG_FILE_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB max per log file
LOG_FILE_BACKUP_COUNT: int = 5  # Number of backup log files to keep
VALID_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_LOG_FORMATS: tuple[str, ...] = ("text", "json")

# ==================== ENVIRONMENT ====================

# Environment variable names read by LockConfig.from_env()
ENV_VAR_MAPPING: dict[str, str] = {
    "database_url": "DBLOCK_DATABASE_URL",
    "table_name": "DBLOCK_TABLE",
    "lease_time": "DBLOCK_LEASE_SECONDS",
    "retry_interval": "DBLOCK_RETRY_INTERVAL",
    "log_level": "LOG_LEVEL",
    "log_format": "DBLOCK_LOG_FORMAT",
}
