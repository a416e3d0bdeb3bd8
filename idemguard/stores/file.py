"""File-based store implementation with cross-process locking."""

import fcntl
import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..record import DataRecord
from .base import PersistenceStore

logger = logging.getLogger(__name__)


class FileStore(PersistenceStore):
    """File-based store for idempotency records.

    Uses JSON files for persistence and fcntl for cross-process locking.
    Safe for multi-process scenarios on one host (e.g., gunicorn workers, celery).

    Args:
        directory: Path to directory for storing records
    """

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _safe_key(self, key: str) -> str:
        return key.replace("/", "_").replace(":", "_")

    def _record_path(self, key: str) -> Path:
        """Get file path for a record."""
        return self.directory / f"{self._safe_key(key)}.json"

    def _lock_path(self, key: str) -> Path:
        """Get lock file path for a key."""
        return self.directory / f"{self._safe_key(key)}.lock"

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        """Hold an exclusive cross-process lock on a key."""
        fd = os.open(self._lock_path(key), os.O_CREAT | os.O_RDWR)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _read(self, key: str) -> DataRecord | None:
        record_path = self._record_path(key)
        try:
            with open(record_path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        return DataRecord.from_dict(data)

    def _write(self, record: DataRecord) -> None:
        record_path = self._record_path(record.key)

        # Write atomically using temp file + rename
        temp_path = record_path.with_suffix(f".{os.getpid()}.tmp")
        with open(temp_path, "w") as f:
            json.dump(record.to_dict(), f, indent=2)

        # Atomic rename
        temp_path.replace(record_path)

    def put_record(self, record: DataRecord, now: float) -> bool:
        with self._locked(record.key):
            existing = self._read(record.key)
            if existing is not None and not existing.is_expired(now):
                return False
            logger.debug("Putting record for idempotency key: %s", record.key)
            self._write(record)
            return True

    def fetch_record(self, key: str) -> DataRecord | None:
        return self._read(key)

    def update_record(self, record: DataRecord) -> None:
        logger.debug("Updating record for idempotency key: %s", record.key)
        with self._locked(record.key):
            self._write(record)

    def remove_record(self, key: str) -> None:
        logger.debug("Deleting record for idempotency key: %s", key)
        with self._locked(key):
            self._record_path(key).unlink(missing_ok=True)

    def clear(self) -> None:
        """Clear all records and locks (useful for testing)."""
        for path in self.directory.glob("*.json"):
            path.unlink(missing_ok=True)
        for path in self.directory.glob("*.lock"):
            path.unlink(missing_ok=True)
