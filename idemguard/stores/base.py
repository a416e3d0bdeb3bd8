"""Base store interfaces for idempotency records."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

from ..config import DEFAULT_EXPIRES_AFTER_SECONDS
from ..exceptions import IdempotencyError, PersistenceLayerError
from ..record import DataRecord, RecordStatus
from ..utils import to_millis

logger = logging.getLogger(__name__)


class SaveResult(Enum):
    """Outcome of the conditional in-progress write."""

    CREATED = "created"
    CONFLICT = "conflict"


@contextmanager
def backend_errors(action: str, key: str) -> Iterator[None]:
    """Translate backend failures into PersistenceLayerError."""
    try:
        yield
    except IdempotencyError:
        raise
    except Exception as e:
        raise PersistenceLayerError(
            f"Failed to {action} for idempotency key '{key}': {e}", e
        ) from e


class _StoreSettings:
    """Per-namespace expiry settings and record construction."""

    def __init__(self) -> None:
        self._namespaces: dict[str, tuple[int, float]] = {}

    def configure(
        self,
        namespace: str,
        expires_after_seconds: int = DEFAULT_EXPIRES_AFTER_SECONDS,
        in_progress_expiry_seconds: float | None = None,
    ) -> None:
        """Register expiry settings for keys under ``namespace``.

        Args:
            namespace: Key prefix identifying the calling operation
            expires_after_seconds: Time-to-live of records
            in_progress_expiry_seconds: Lifetime of in-progress markers
                (None = expires_after_seconds)
        """
        if in_progress_expiry_seconds is None:
            in_progress_expiry_seconds = expires_after_seconds
        self._namespaces[namespace] = (
            int(expires_after_seconds),
            float(in_progress_expiry_seconds),
        )

    def _settings_for(self, key: str, namespace: str | None = None) -> tuple[int, float]:
        if namespace is None:
            namespace = key.rpartition("#")[0]
        default = (DEFAULT_EXPIRES_AFTER_SECONDS, float(DEFAULT_EXPIRES_AFTER_SECONDS))
        return self._namespaces.get(namespace, default)

    def _in_progress_record(
        self,
        key: str,
        fingerprint: str | None,
        now: float,
        deadline_hint: float | None,
        namespace: str | None,
    ) -> DataRecord:
        expires_after, in_progress_ttl = self._settings_for(key, namespace)
        if deadline_hint is not None:
            in_progress_ttl = min(in_progress_ttl, max(deadline_hint, 0.0))
        return DataRecord(
            key=key,
            status=RecordStatus.IN_PROGRESS,
            expiry=int(now + expires_after),
            in_progress_expiry=to_millis(now + in_progress_ttl),
            validation=fingerprint,
        )

    def _completed_record(
        self,
        key: str,
        response_data: str,
        now: float,
        fingerprint: str | None,
        namespace: str | None,
    ) -> DataRecord:
        return DataRecord(
            key=key,
            status=RecordStatus.COMPLETED,
            expiry=int(now + self._settings_for(key, namespace)[0]),
            response_data=response_data,
            validation=fingerprint,
        )


class PersistenceStore(_StoreSettings, ABC):
    """Abstract base class for idempotency stores.

    Subclasses implement four primitives over a key-value backend:
    - an atomic conditional insert (absent or expired)
    - a point lookup returning the raw record
    - an unconditional overwrite
    - an idempotent delete

    Every public method raises PersistenceLayerError on backend faults.
    """

    def save_in_progress(
        self,
        key: str,
        fingerprint: str | None,
        now: float,
        deadline_hint: float | None = None,
        *,
        namespace: str | None = None,
    ) -> SaveResult:
        """Write an IN_PROGRESS marker unless a live record exists.

        Args:
            key: The idempotency key
            fingerprint: Payload validation hash, if enabled
            now: Current time (epoch seconds)
            deadline_hint: Remaining seconds the caller has to finish
            namespace: Settings to apply (default: the prefix of ``key``)

        Returns:
            SaveResult.CREATED if this caller won, SaveResult.CONFLICT otherwise
        """
        record = self._in_progress_record(
            key, fingerprint, now, deadline_hint, namespace
        )
        with backend_errors("save in progress record", key):
            created = self.put_record(record, now)
        if not created:
            logger.debug("Record already exists for idempotency key: %s", key)
            return SaveResult.CONFLICT
        return SaveResult.CREATED

    def get_record(self, key: str, now: float) -> DataRecord | None:
        """Fetch the stored record, expired or not.

        Returns:
            The record if found, None otherwise
        """
        with backend_errors("get record", key):
            record = self.fetch_record(key)
        if record is not None and record.is_expired(now):
            logger.debug("Fetched expired record for idempotency key: %s", key)
        return record

    def save_success(
        self,
        key: str,
        response_data: str,
        now: float,
        fingerprint: str | None = None,
        namespace: str | None = None,
    ) -> DataRecord:
        """Overwrite the record with a COMPLETED result and return it."""
        record = self._completed_record(
            key, response_data, now, fingerprint, namespace
        )
        with backend_errors("save success record", key):
            self.update_record(record)
        return record

    def delete_record(self, key: str) -> None:
        """Delete the record; deleting an absent key is not an error."""
        with backend_errors("delete record", key):
            self.remove_record(key)

    @abstractmethod
    def put_record(self, record: DataRecord, now: float) -> bool:
        """Atomically insert a record if none exists or the existing one expired.

        Args:
            record: The record to insert
            now: Current time (epoch seconds) for the expiry precondition

        Returns:
            True if inserted, False if a live record already exists
        """
        pass

    @abstractmethod
    def fetch_record(self, key: str) -> DataRecord | None:
        """Retrieve a record by key without filtering expired ones."""
        pass

    @abstractmethod
    def update_record(self, record: DataRecord) -> None:
        """Unconditionally overwrite a record."""
        pass

    @abstractmethod
    def remove_record(self, key: str) -> None:
        """Delete a record if present."""
        pass


class AsyncPersistenceStore(_StoreSettings, ABC):
    """Awaitable counterpart of PersistenceStore for asyncio applications."""

    async def save_in_progress(
        self,
        key: str,
        fingerprint: str | None,
        now: float,
        deadline_hint: float | None = None,
        *,
        namespace: str | None = None,
    ) -> SaveResult:
        record = self._in_progress_record(
            key, fingerprint, now, deadline_hint, namespace
        )
        with backend_errors("save in progress record", key):
            created = await self.put_record(record, now)
        if not created:
            logger.debug("Record already exists for idempotency key: %s", key)
            return SaveResult.CONFLICT
        return SaveResult.CREATED

    async def get_record(self, key: str, now: float) -> DataRecord | None:
        with backend_errors("get record", key):
            record = await self.fetch_record(key)
        if record is not None and record.is_expired(now):
            logger.debug("Fetched expired record for idempotency key: %s", key)
        return record

    async def save_success(
        self,
        key: str,
        response_data: str,
        now: float,
        fingerprint: str | None = None,
        namespace: str | None = None,
    ) -> DataRecord:
        record = self._completed_record(
            key, response_data, now, fingerprint, namespace
        )
        with backend_errors("save success record", key):
            await self.update_record(record)
        return record

    async def delete_record(self, key: str) -> None:
        with backend_errors("delete record", key):
            await self.remove_record(key)

    @abstractmethod
    async def put_record(self, record: DataRecord, now: float) -> bool:
        pass

    @abstractmethod
    async def fetch_record(self, key: str) -> DataRecord | None:
        pass

    @abstractmethod
    async def update_record(self, record: DataRecord) -> None:
        pass

    @abstractmethod
    async def remove_record(self, key: str) -> None:
        pass
