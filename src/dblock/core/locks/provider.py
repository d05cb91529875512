"""Factory handing out distributed locks that share one lock store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from dblock.core.config import LockConfig
from dblock.core.constants import DEFAULT_LEASE_TIME, DEFAULT_RETRY_INTERVAL, DEFAULT_TABLE_NAME
from dblock.core.locks.backends import LockStore, SqlAlchemyLockStore
from dblock.core.locks.distributed import DistributedLock

logger = logging.getLogger(__name__)


class DistributedLockProvider:
    """Create `DistributedLock` instances bound to a shared store.

    Each `get_lock` call returns a new instance; instances for the same key
    exclude each other through the store like separate processes would.
    """

    def __init__(
        self,
        store: LockStore,
        *,
        lease_time: float = DEFAULT_LEASE_TIME,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        on_lease_lost: Callable[[str], None] | None = None,
    ):
        self.store = store
        self.lease_time = lease_time
        self.retry_interval = retry_interval
        self.on_lease_lost = on_lease_lost

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        table_name: str = DEFAULT_TABLE_NAME,
        create_schema: bool = False,
        engine_kwargs: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> DistributedLockProvider:
        store = SqlAlchemyLockStore.from_url(url, table_name=table_name, **(engine_kwargs or {}))
        if create_schema:
            store.create_schema()
        return cls(store, **kwargs)

    @classmethod
    def from_config(cls, config: LockConfig, *, create_schema: bool = False) -> DistributedLockProvider:
        return cls.from_url(
            config.require_database_url(),
            table_name=config.table_name,
            create_schema=create_schema,
            lease_time=config.lease_time,
            retry_interval=config.retry_interval,
        )

    def get_lock(self, lock_key: str) -> DistributedLock:
        if not lock_key:
            raise ValueError("lock_key must not be empty")
        return DistributedLock(
            lock_key,
            self.store,
            lease_time=self.lease_time,
            retry_interval=self.retry_interval,
            on_lease_lost=self.on_lease_lost,
        )
