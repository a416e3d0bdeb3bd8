"""Storage backends for idempotency records."""

from .base import AsyncPersistenceStore, PersistenceStore, SaveResult
from .memory import AsyncMemoryStore, MemoryStore

__all__ = [
    "PersistenceStore",
    "AsyncPersistenceStore",
    "SaveResult",
    "MemoryStore",
    "AsyncMemoryStore",
    "FileStore",
    "RedisStore",
    "AsyncRedisStore",
]


def __getattr__(name: str) -> type:
    if name == "RedisStore":
        from .redis import RedisStore

        return RedisStore
    if name == "AsyncRedisStore":
        from .redis import AsyncRedisStore

        return AsyncRedisStore
    if name == "FileStore":
        from .file import FileStore

        return FileStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
