"""idemguard - Idempotent handlers backed by a shared persistence store.

Makes a stateless operation idempotent across repeated invocations that
share a logical request, even when the invocations race across
independent processes.

Example:
    @idempotent(store=RedisStore(client), key="order_id", request_arg="event")
    def create_order(event):
        charge_card(event["card"], event["amount"])
        return {"order_id": event["order_id"]}
"""

import logging

from .cache import LRUCache
from .config import IdempotencyConfig, is_disabled
from .coordinator import MAX_RETRIES, AsyncCoordinator, Coordinator
from .decorator import idempotent
from .exceptions import (
    AlreadyInProgressError,
    IdempotencyError,
    IdempotencyKeyError,
    IdempotencyValidationError,
    InconsistentStateError,
    PersistenceLayerError,
    SerializationError,
)
from .key import KeyExtractor
from .record import DataRecord, RecordStatus
from .serialization import DataclassSerializer, JsonSerializer
from .stores import (
    AsyncMemoryStore,
    AsyncPersistenceStore,
    MemoryStore,
    PersistenceStore,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "idempotent",
    "Coordinator",
    "AsyncCoordinator",
    "MAX_RETRIES",
    "IdempotencyConfig",
    "is_disabled",
    "KeyExtractor",
    "LRUCache",
    "DataRecord",
    "RecordStatus",
    "JsonSerializer",
    "DataclassSerializer",
    "IdempotencyError",
    "IdempotencyKeyError",
    "AlreadyInProgressError",
    "IdempotencyValidationError",
    "InconsistentStateError",
    "PersistenceLayerError",
    "SerializationError",
    "PersistenceStore",
    "AsyncPersistenceStore",
    "MemoryStore",
    "AsyncMemoryStore",
]
