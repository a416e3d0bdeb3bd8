"""Coordination of idempotent executions across racing processes.

A coordinator turns any zero-argument operation into an idempotent one:

1. Try to write an IN_PROGRESS marker with a conditional insert. The
   store guarantees that only one concurrent caller succeeds.
2. The winner runs the operation, then stores its response (or deletes
   the marker if the operation raised).
3. Losers read the existing record and replay a completed response,
   raise AlreadyInProgressError for a live marker, or retry (at most
   MAX_RETRIES times) when the record changed between the two calls.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from .cache import LRUCache
from .config import IdempotencyConfig
from .exceptions import (
    AlreadyInProgressError,
    IdempotencyValidationError,
    InconsistentStateError,
    PersistenceLayerError,
    SerializationError,
)
from .key import KeyExtractor
from .record import DataRecord, RecordStatus
from .serialization import JsonSerializer
from .stores.base import AsyncPersistenceStore, PersistenceStore, SaveResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 2

# Returned by an attempt that observed inconsistent store state
_RETRY = object()


class _BaseCoordinator(Generic[T]):
    """State shared by the sync and asyncio coordinators."""

    def __init__(
        self,
        store: PersistenceStore | AsyncPersistenceStore,
        config: IdempotencyConfig | None = None,
        namespace: str = "default",
        cache: LRUCache[str, DataRecord] | None = None,
        serializer: JsonSerializer[T] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or IdempotencyConfig()
        self.namespace = namespace
        self.store = store
        self.key_extractor = KeyExtractor(
            namespace,
            key_selector=self.config.event_key_selector,
            validation_selector=self.config.payload_validation_selector,
            hash_function=self.config.hash_function,
        )
        if cache is None and self.config.use_local_cache:
            cache = LRUCache(self.config.local_cache_max_items)
        self.cache = cache
        self.serializer: JsonSerializer[T] = serializer or JsonSerializer()
        self.clock = clock

        store.configure(
            namespace,
            self.config.expires_after_seconds,
            self.config.in_progress_expiry_seconds,
        )

    def _cached_record(self, key: str, now: float) -> DataRecord | None:
        """Return a live completed record from the local cache, if any."""
        if self.cache is None:
            return None
        record, found = self.cache.get(key)
        if not found or record is None:
            return None
        if record.is_expired(now):
            self.cache.delete(key)
            return None
        logger.debug("Record for idempotency key %s found in local cache", key)
        return record

    def _remember(self, record: DataRecord) -> None:
        # In-progress records can change outside this process; never cache them
        if self.cache is not None and record.status is RecordStatus.COMPLETED:
            self.cache.set(record.key, record)

    def _forget(self, key: str) -> None:
        if self.cache is not None:
            self.cache.delete(key)

    def _handle_existing(
        self,
        key: str,
        record: DataRecord | None,
        fingerprint: str | None,
        now: float,
    ) -> object:
        """Decide what a losing caller does with the record it found."""
        if record is None:
            logger.debug(
                "Record for idempotency key %s was deleted before it could be fetched",
                key,
            )
            return _RETRY

        if record.is_expired(now):
            logger.debug("Record for idempotency key %s expired after the conflict", key)
            return _RETRY

        if record.status is RecordStatus.COMPLETED:
            self._remember(record)
            return self._replay(record, fingerprint)

        if record.is_in_progress_expired(now):
            logger.debug(
                "In-progress record for idempotency key %s timed out without cleanup",
                key,
            )
            return _RETRY

        raise AlreadyInProgressError(key)

    def _replay(self, record: DataRecord, fingerprint: str | None) -> T:
        if fingerprint is not None and record.validation != fingerprint:
            raise IdempotencyValidationError(record.key)

        logger.debug(
            "Response for key '%s' retrieved from idempotency store, skipping the function",
            record.key,
        )
        try:
            return self.serializer.from_data(record.response_data)  # type: ignore[arg-type]
        except Exception as e:
            raise PersistenceLayerError(
                f"Unable to deserialize stored response for idempotency key '{record.key}'",
                e,
            ) from e

    @staticmethod
    def _log_cleanup(key: str, error: BaseException) -> None:
        logger.info(
            "Function raised %s. Clearing in progress record for idempotency key: %s",
            type(error).__name__,
            key,
        )

    @staticmethod
    def _log_cleanup_failure(key: str) -> None:
        logger.warning(
            "Failed to delete in progress record for idempotency key: %s",
            key,
            exc_info=True,
        )


class Coordinator(_BaseCoordinator[T]):
    """Run operations at most once per idempotency key.

    Args:
        store: Persistence backend with an atomic conditional insert
        config: Selectors, expiry and cache settings
        namespace: Identifies the protected operation; prefixes its keys
        cache: Local cache (defaults to an LRUCache when config.use_local_cache)
        serializer: Converts responses to and from stored text
        clock: Returns the current epoch time in seconds

    Example:
        coordinator = Coordinator(RedisStore(client), namespace="orders.create")
        order = coordinator.handle(event, lambda: create_order(event))
    """

    store: PersistenceStore

    def handle(
        self,
        request: object,
        operation: Callable[[], T],
        deadline_hint: float | None = None,
        *,
        bypass_cache: bool = False,
    ) -> T:
        """Derive the key from ``request`` and execute ``operation``."""
        key, fingerprint = self.key_extractor.derive(request)
        return self.execute(
            key, operation, fingerprint, deadline_hint, bypass_cache=bypass_cache
        )

    def execute(
        self,
        key: str,
        operation: Callable[[], T],
        fingerprint: str | None = None,
        deadline_hint: float | None = None,
        *,
        bypass_cache: bool = False,
    ) -> T:
        """Execute ``operation`` once for ``key`` and replay its response after.

        Args:
            key: Idempotency key
            operation: Zero-argument callable producing the response
            fingerprint: Payload validation hash, if enabled
            deadline_hint: Seconds the caller has left; bounds the in-progress marker
            bypass_cache: Skip the local cache and go to the store

        Raises:
            AlreadyInProgressError: Another caller is executing this key
            IdempotencyValidationError: The key was used with another payload
            InconsistentStateError: The store stayed inconsistent across retries
            PersistenceLayerError: The store failed
        """
        for attempt in range(MAX_RETRIES + 1):
            outcome = self._attempt(key, operation, fingerprint, deadline_hint, bypass_cache)
            if outcome is not _RETRY:
                return outcome  # type: ignore[return-value]
            logger.debug(
                "Inconsistent state for idempotency key %s (attempt %d of %d)",
                key,
                attempt + 1,
                MAX_RETRIES + 1,
            )
        raise InconsistentStateError(key, MAX_RETRIES)

    def _attempt(
        self,
        key: str,
        operation: Callable[[], T],
        fingerprint: str | None,
        deadline_hint: float | None,
        bypass_cache: bool,
    ) -> object:
        if not bypass_cache:
            cached = self._cached_record(key, self.clock())
            if cached is not None:
                return self._replay(cached, fingerprint)

        saved = self.store.save_in_progress(
            key, fingerprint, self.clock(), deadline_hint, namespace=self.namespace
        )
        if saved is SaveResult.CREATED:
            return self._run(key, operation, fingerprint)

        now = self.clock()
        record = self.store.get_record(key, now)
        return self._handle_existing(key, record, fingerprint, now)

    def _run(self, key: str, operation: Callable[[], T], fingerprint: str | None) -> T:
        try:
            response = operation()
        except BaseException as e:
            self._clear_in_progress(key, e)
            raise

        try:
            response_data = self.serializer.to_data(response)
        except SerializationError as e:
            self._clear_in_progress(key, e)
            raise

        record = self.store.save_success(
            key,
            response_data,
            self.clock(),
            fingerprint=fingerprint,
            namespace=self.namespace,
        )
        self._remember(record)
        return response

    def _clear_in_progress(self, key: str, error: BaseException) -> None:
        """Best-effort removal of our marker; never masks ``error``."""
        self._log_cleanup(key, error)
        try:
            self.store.delete_record(key)
        except PersistenceLayerError:
            self._log_cleanup_failure(key)
        self._forget(key)


class AsyncCoordinator(_BaseCoordinator[T]):
    """asyncio counterpart of Coordinator.

    Store calls are awaited, so one event loop can run many executions
    concurrently. Operations are zero-argument callables returning an
    awaitable.
    """

    store: AsyncPersistenceStore

    async def handle(
        self,
        request: object,
        operation: Callable[[], Awaitable[T]],
        deadline_hint: float | None = None,
        *,
        bypass_cache: bool = False,
    ) -> T:
        key, fingerprint = self.key_extractor.derive(request)
        return await self.execute(
            key, operation, fingerprint, deadline_hint, bypass_cache=bypass_cache
        )

    async def execute(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        fingerprint: str | None = None,
        deadline_hint: float | None = None,
        *,
        bypass_cache: bool = False,
    ) -> T:
        for attempt in range(MAX_RETRIES + 1):
            outcome = await self._attempt(
                key, operation, fingerprint, deadline_hint, bypass_cache
            )
            if outcome is not _RETRY:
                return outcome  # type: ignore[return-value]
            logger.debug(
                "Inconsistent state for idempotency key %s (attempt %d of %d)",
                key,
                attempt + 1,
                MAX_RETRIES + 1,
            )
        raise InconsistentStateError(key, MAX_RETRIES)

    async def _attempt(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        fingerprint: str | None,
        deadline_hint: float | None,
        bypass_cache: bool,
    ) -> object:
        if not bypass_cache:
            cached = self._cached_record(key, self.clock())
            if cached is not None:
                return self._replay(cached, fingerprint)

        saved = await self.store.save_in_progress(
            key, fingerprint, self.clock(), deadline_hint, namespace=self.namespace
        )
        if saved is SaveResult.CREATED:
            return await self._run(key, operation, fingerprint)

        now = self.clock()
        record = await self.store.get_record(key, now)
        return self._handle_existing(key, record, fingerprint, now)

    async def _run(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        fingerprint: str | None,
    ) -> T:
        try:
            response = await operation()
        except BaseException as e:
            await self._clear_in_progress(key, e)
            raise

        try:
            response_data = self.serializer.to_data(response)
        except SerializationError as e:
            await self._clear_in_progress(key, e)
            raise

        record = await self.store.save_success(
            key,
            response_data,
            self.clock(),
            fingerprint=fingerprint,
            namespace=self.namespace,
        )
        self._remember(record)
        return response

    async def _clear_in_progress(self, key: str, error: BaseException) -> None:
        self._log_cleanup(key, error)
        try:
            await self.store.delete_record(key)
        except PersistenceLayerError:
            self._log_cleanup_failure(key)
        self._forget(key)
