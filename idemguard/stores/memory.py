"""In-memory store implementation."""

import logging
import threading

from ..record import DataRecord
from .base import AsyncPersistenceStore, PersistenceStore

logger = logging.getLogger(__name__)


class MemoryStore(PersistenceStore):
    """Thread-safe in-memory store for idempotency records.

    Note: This store does NOT persist across processes or restarts.
    Use FileStore or RedisStore for multi-process scenarios.
    """

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, DataRecord] = {}
        self._global_lock = threading.Lock()

    def put_record(self, record: DataRecord, now: float) -> bool:
        """Insert a record unless a non-expired one exists."""
        with self._global_lock:
            existing = self._records.get(record.key)
            if existing is not None and not existing.is_expired(now):
                return False
            logger.debug("Putting record for idempotency key: %s", record.key)
            self._records[record.key] = record
            return True

    def fetch_record(self, key: str) -> DataRecord | None:
        with self._global_lock:
            return self._records.get(key)

    def update_record(self, record: DataRecord) -> None:
        logger.debug("Updating record for idempotency key: %s", record.key)
        with self._global_lock:
            self._records[record.key] = record

    def remove_record(self, key: str) -> None:
        logger.debug("Deleting record for idempotency key: %s", key)
        with self._global_lock:
            self._records.pop(key, None)

    def clear(self) -> None:
        """Clear all records (useful for testing)."""
        with self._global_lock:
            self._records.clear()


class AsyncMemoryStore(AsyncPersistenceStore):
    """Awaitable wrapper around MemoryStore for asyncio code and tests."""

    def __init__(self, store: MemoryStore | None = None) -> None:
        super().__init__()
        self._store = store or MemoryStore()

    async def put_record(self, record: DataRecord, now: float) -> bool:
        return self._store.put_record(record, now)

    async def fetch_record(self, key: str) -> DataRecord | None:
        return self._store.fetch_record(key)

    async def update_record(self, record: DataRecord) -> None:
        self._store.update_record(record)

    async def remove_record(self, key: str) -> None:
        self._store.remove_record(key)

    def clear(self) -> None:
        self._store.clear()
