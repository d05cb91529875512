"""Lock store backends.

Design principles:
- A lock record is `(lock_key, version, expired_time)`; `version` is the
  optimistic-concurrency token and `expired_time` is epoch milliseconds.
- Every backend operation is individually atomic. No operation spans more
  than one key, so no multi-key transactions are required.
- Conditional writes report how many records they touched; callers decide
  what a zero count means.
- Driver failures surface as `LockStoreError`. A duplicate insert is not a
  failure, it is a lost race and returns False.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, replace
from typing import Any, Protocol

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dblock.core.constants import DEFAULT_TABLE_NAME, INITIAL_VERSION, LOCK_KEY_MAX_LENGTH
from dblock.core.exceptions import LockStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockRecord:
    """Snapshot of a persisted lock record."""

    lock_key: str
    version: int
    expired_time: int

    def is_expired(self, now_millis: int) -> bool:
        return now_millis >= self.expired_time

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LockStore(Protocol):
    """Backend abstraction for the four atomic lock-record operations."""

    name: str

    def read(self, lock_key: str) -> LockRecord | None:
        """Return the current record for `lock_key`, or None."""

    def insert(self, lock_key: str, expired_time: int) -> bool:
        """Create the record at version 1. Returns False if the key already exists."""

    def update(self, lock_key: str, expected_version: int, expired_time: int) -> int:
        """Bump version by one and set expiry where version matches. Returns rows affected."""

    def delete(self, lock_key: str, expected_version: int) -> int:
        """Delete the record where version matches. Returns rows affected."""

    def list_records(self) -> list[LockRecord]:
        """Return every record, for diagnostics."""


class InMemoryLockStore:
    """Process-local, thread-safe lock store.

    Used for:
    - Tests
    - Local experiments
    - Coordinating threads of a single process

    NOT for coordinating separate processes.
    """

    name = "memory"

    def __init__(self) -> None:
        self._records: dict[str, LockRecord] = {}
        self._mutex = threading.Lock()

    def read(self, lock_key: str) -> LockRecord | None:
        with self._mutex:
            return self._records.get(lock_key)

    def insert(self, lock_key: str, expired_time: int) -> bool:
        with self._mutex:
            if lock_key in self._records:
                return False
            self._records[lock_key] = LockRecord(lock_key, INITIAL_VERSION, expired_time)
            return True

    def update(self, lock_key: str, expected_version: int, expired_time: int) -> int:
        with self._mutex:
            current = self._records.get(lock_key)
            if current is None or current.version != expected_version:
                return 0
            self._records[lock_key] = replace(current, version=current.version + 1, expired_time=expired_time)
            return 1

    def delete(self, lock_key: str, expected_version: int) -> int:
        with self._mutex:
            current = self._records.get(lock_key)
            if current is None or current.version != expected_version:
                return 0
            del self._records[lock_key]
            return 1

    def list_records(self) -> list[LockRecord]:
        with self._mutex:
            return sorted(self._records.values(), key=lambda record: record.lock_key)

    def put(self, record: LockRecord) -> None:
        """Overwrite a record unconditionally (fixtures and manual repair)."""
        with self._mutex:
            self._records[record.lock_key] = record


def build_lock_table(metadata: MetaData, table_name: str = DEFAULT_TABLE_NAME) -> Table:
    """Describe the lock table on `metadata`."""
    return Table(
        table_name,
        metadata,
        Column("lock_key", String(LOCK_KEY_MAX_LENGTH), primary_key=True),
        Column("version", Integer, nullable=False),
        Column("expired_time", BigInteger, nullable=False),
    )


class SqlAlchemyLockStore:
    """Relational lock store backed by SQLAlchemy Core.

    Every operation checks a connection out of the engine's pool, runs in
    its own transaction and returns the connection before returning.
    """

    name = "sqlalchemy"

    def __init__(self, engine: Engine, table_name: str = DEFAULT_TABLE_NAME):
        self.engine = engine
        self.metadata = MetaData()
        self.table = build_lock_table(self.metadata, table_name)

    @classmethod
    def from_url(cls, url: str, table_name: str = DEFAULT_TABLE_NAME, **engine_kwargs: Any) -> SqlAlchemyLockStore:
        engine_kwargs.setdefault("pool_pre_ping", True)
        return cls(create_engine(url, **engine_kwargs), table_name=table_name)

    def create_schema(self) -> None:
        """Create the lock table if it does not exist yet."""
        try:
            self.metadata.create_all(self.engine, checkfirst=True)
        except SQLAlchemyError as e:
            raise LockStoreError("Failed to create lock table", operation="create_schema", original_error=e) from e
        logger.info("Lock table '%s' is ready", self.table.name)

    def dispose(self) -> None:
        self.engine.dispose()

    def read(self, lock_key: str) -> LockRecord | None:
        t = self.table
        stmt = select(t.c.version, t.c.expired_time).where(t.c.lock_key == lock_key)
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as e:
            raise LockStoreError("Failed to read lock record", operation="read", lock_key=lock_key, original_error=e) from e
        if row is None:
            return None
        return LockRecord(lock_key=lock_key, version=int(row.version), expired_time=int(row.expired_time))

    def insert(self, lock_key: str, expired_time: int) -> bool:
        stmt = insert(self.table).values(lock_key=lock_key, version=INITIAL_VERSION, expired_time=expired_time)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        except IntegrityError:
            logger.debug("Lock record '%s' already exists; insert lost the race", lock_key)
            return False
        except SQLAlchemyError as e:
            raise LockStoreError(
                "Failed to insert lock record", operation="insert", lock_key=lock_key, original_error=e
            ) from e
        return result.rowcount != 0

    def update(self, lock_key: str, expected_version: int, expired_time: int) -> int:
        t = self.table
        stmt = (
            update(t)
            .where(t.c.lock_key == lock_key, t.c.version == expected_version)
            .values(version=t.c.version + 1, expired_time=expired_time)
        )
        try:
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount
        except SQLAlchemyError as e:
            raise LockStoreError(
                "Failed to update lock record", operation="update", lock_key=lock_key, original_error=e
            ) from e

    def delete(self, lock_key: str, expected_version: int) -> int:
        t = self.table
        stmt = delete(t).where(t.c.lock_key == lock_key, t.c.version == expected_version)
        try:
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount
        except SQLAlchemyError as e:
            raise LockStoreError(
                "Failed to delete lock record", operation="delete", lock_key=lock_key, original_error=e
            ) from e

    def list_records(self) -> list[LockRecord]:
        t = self.table
        stmt = select(t.c.lock_key, t.c.version, t.c.expired_time).order_by(t.c.lock_key)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as e:
            raise LockStoreError("Failed to list lock records", operation="list", original_error=e) from e
        return [
            LockRecord(lock_key=row.lock_key, version=int(row.version), expired_time=int(row.expired_time))
            for row in rows
        ]
