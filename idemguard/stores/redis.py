"""Redis-based store implementations with atomic conditional writes."""

import json
import logging
from typing import TYPE_CHECKING

from redis.exceptions import WatchError

from ..record import DataRecord
from .base import AsyncPersistenceStore, PersistenceStore

if TYPE_CHECKING:
    from redis import Redis
    from redis.asyncio import Redis as AsyncRedis

logger = logging.getLogger(__name__)


class _RedisLayout:
    """Key naming and record encoding shared by the Redis stores."""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix

    def _key(self, key: str) -> str:
        """Add prefix to key."""
        return f"{self.prefix}{key}"

    @staticmethod
    def _encode(record: DataRecord) -> str:
        return json.dumps(record.to_dict())

    @staticmethod
    def _decode(data: bytes | str | None) -> DataRecord | None:
        if data is None:
            return None
        return DataRecord.from_dict(json.loads(data))

    @staticmethod
    def _ttl(record: DataRecord, now: float) -> int:
        # Backend expiry is only an optimization; expiry is checked logically.
        return max(1, record.expiry - int(now))

    @staticmethod
    def _is_live(data: bytes | str | None, now: float) -> bool:
        record = _RedisLayout._decode(data)
        return record is not None and not record.is_expired(now)


class RedisStore(_RedisLayout, PersistenceStore):
    """Redis-based store for idempotency records.

    The in-progress insert runs under WATCH/MULTI, so only one of any
    number of racing processes can create the record.
    Safe for multi-process and multi-server scenarios.

    Args:
        client: Redis client instance
        prefix: Key prefix for namespacing (default: "idempotency:")
    """

    def __init__(self, client: "Redis", prefix: str = "idempotency:") -> None:
        PersistenceStore.__init__(self)
        _RedisLayout.__init__(self, prefix)
        self.client = client

    def put_record(self, record: DataRecord, now: float) -> bool:
        name = self._key(record.key)
        with self.client.pipeline() as pipe:
            try:
                pipe.watch(name)
                if self._is_live(pipe.get(name), now):
                    return False
                logger.debug("Putting record for idempotency key: %s", record.key)
                pipe.multi()
                pipe.set(name, self._encode(record), ex=self._ttl(record, now))
                pipe.execute()
            except WatchError:
                # Another writer touched the key between WATCH and EXEC
                return False
        return True

    def fetch_record(self, key: str) -> DataRecord | None:
        return self._decode(self.client.get(self._key(key)))

    def update_record(self, record: DataRecord) -> None:
        logger.debug("Updating record for idempotency key: %s", record.key)
        self.client.set(
            self._key(record.key),
            self._encode(record),
            exat=record.expiry,
        )

    def remove_record(self, key: str) -> None:
        logger.debug("Deleting record for idempotency key: %s", key)
        self.client.delete(self._key(key))

    def clear(self) -> None:
        """Clear all records with this prefix (useful for testing)."""
        # Get all keys with prefix
        pattern = f"{self.prefix}*"
        cursor = 0

        while True:
            cursor, keys = self.client.scan(cursor, match=pattern, count=100)
            if keys:
                self.client.delete(*keys)
            if cursor == 0:
                break


class AsyncRedisStore(_RedisLayout, AsyncPersistenceStore):
    """asyncio Redis store with the same layout as RedisStore.

    Args:
        client: redis.asyncio client instance
        prefix: Key prefix for namespacing (default: "idempotency:")
    """

    def __init__(self, client: "AsyncRedis", prefix: str = "idempotency:") -> None:
        AsyncPersistenceStore.__init__(self)
        _RedisLayout.__init__(self, prefix)
        self.client = client

    async def put_record(self, record: DataRecord, now: float) -> bool:
        name = self._key(record.key)
        async with self.client.pipeline() as pipe:
            try:
                await pipe.watch(name)
                if self._is_live(await pipe.get(name), now):
                    return False
                logger.debug("Putting record for idempotency key: %s", record.key)
                pipe.multi()
                pipe.set(name, self._encode(record), ex=self._ttl(record, now))
                await pipe.execute()
            except WatchError:
                return False
        return True

    async def fetch_record(self, key: str) -> DataRecord | None:
        return self._decode(await self.client.get(self._key(key)))

    async def update_record(self, record: DataRecord) -> None:
        logger.debug("Updating record for idempotency key: %s", record.key)
        await self.client.set(
            self._key(record.key),
            self._encode(record),
            exat=record.expiry,
        )

    async def remove_record(self, key: str) -> None:
        logger.debug("Deleting record for idempotency key: %s", key)
        await self.client.delete(self._key(key))

    async def clear(self) -> None:
        """Clear all records with this prefix (useful for testing)."""
        async for name in self.client.scan_iter(match=f"{self.prefix}*", count=100):
            await self.client.delete(name)
