"""Configuration dataclass for dblock.

`LockConfig` centralizes connection and timing options. It can be created
directly in code, from command-line arguments, or from the environment
(optionally populated from a `.env` file).
"""

from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from dblock.core.constants import (
    DEFAULT_LEASE_TIME,
    DEFAULT_LOG_FORMAT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_RETRY_INTERVAL,
    DEFAULT_TABLE_NAME,
    ENV_VAR_MAPPING,
    LOCK_KEY_MAX_LENGTH,
    VALID_LOG_FORMATS,
    VALID_LOG_LEVELS,
)
from dblock.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid number for {name}", field=name, details=repr(raw)) from e


@dataclass
class LockConfig:
    """Configuration for lock providers and the CLI.

    Attributes:
        database_url: SQLAlchemy database URL of the lock store (default: None)
        table_name: Name of the lock table (default: "distributed_lock")
        lease_time: Lease duration in seconds for acquisitions (default: 60.0)
        retry_interval: Backoff between store attempts in seconds (default: 5.0)
        log_level: Logging level string (default: "INFO")
        log_format: "text" or "json" (default: "text")
    """

    database_url: str | None = None
    table_name: str = DEFAULT_TABLE_NAME
    lease_time: float = DEFAULT_LEASE_TIME
    retry_interval: float = DEFAULT_RETRY_INTERVAL
    log_level: str = DEFAULT_LOG_LEVEL
    log_format: str = DEFAULT_LOG_FORMAT

    def validate(self) -> LockConfig:
        """Check value ranges, raising ConfigurationError on the first problem."""
        if self.lease_time <= 0:
            raise ConfigurationError("lease_time must be positive", field="lease_time", details=str(self.lease_time))
        if self.retry_interval <= 0:
            raise ConfigurationError(
                "retry_interval must be positive", field="retry_interval", details=str(self.retry_interval)
            )
        if not self.table_name or not self.table_name.strip():
            raise ConfigurationError("table_name must not be empty", field="table_name")
        if len(self.table_name) > LOCK_KEY_MAX_LENGTH:
            raise ConfigurationError("table_name is too long", field="table_name")
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"log_level must be one of {', '.join(VALID_LOG_LEVELS)}", field="log_level", details=self.log_level
            )
        if self.log_format.lower() not in VALID_LOG_FORMATS:
            raise ConfigurationError(
                f"log_format must be one of {', '.join(VALID_LOG_FORMATS)}",
                field="log_format",
                details=self.log_format,
            )
        return self

    def require_database_url(self) -> str:
        if not self.database_url:
            raise ConfigurationError(
                "No database URL configured",
                field="database_url",
                details=f"set {ENV_VAR_MAPPING['database_url']} or pass --database-url",
            )
        return self.database_url

    def to_dict(self) -> dict[str, Any]:
        return {
            "database_url": self.database_url,
            "table_name": self.table_name,
            "lease_time": self.lease_time,
            "retry_interval": self.retry_interval,
            "log_level": self.log_level,
            "log_format": self.log_format,
        }

    @classmethod
    def from_env(cls, env_file: str | Path | None = None, environ: dict[str, str] | None = None) -> LockConfig:
        """Create configuration from environment variables.

        A `.env` file is loaded first (without overriding variables that are
        already set). Pass `environ` to read from a mapping instead of
        `os.environ`; no `.env` file is loaded in that case.
        """
        if environ is None:
            if load_dotenv(dotenv_path=env_file):
                logger.debug("Loaded environment from .env file")
            environ = dict(os.environ)

        values: dict[str, Any] = {}
        for field_name, var_name in ENV_VAR_MAPPING.items():
            raw = environ.get(var_name)
            if raw is None or not raw.strip():
                continue
            raw = raw.strip()
            if field_name in ("lease_time", "retry_interval"):
                values[field_name] = _parse_float(var_name, raw)
            else:
                values[field_name] = raw
        return cls(**values).validate()

    @classmethod
    def from_args(cls, args: argparse.Namespace, base: LockConfig | None = None) -> LockConfig:
        """Overlay parsed command-line arguments on top of `base`."""
        base = base or cls()
        return cls(
            database_url=getattr(args, "database_url", None) or base.database_url,
            table_name=getattr(args, "table", None) or base.table_name,
            lease_time=base.lease_time,
            retry_interval=base.retry_interval,
            log_level=getattr(args, "log_level", None) or base.log_level,
            log_format=getattr(args, "log_format", None) or base.log_format,
        ).validate()
