"""DataRecord dataclass for storing execution state."""

from dataclasses import dataclass, replace
from enum import Enum

from idemguard.utils import ensure_int, to_millis


class RecordStatus(str, Enum):
    """Status of an idempotency record.

    EXPIRED is never persisted; it is derived when a record is read after
    its expiry.
    """

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class DataRecord:
    """Represents the persisted state of an idempotent execution.

    Attributes:
        key: Idempotency key (``namespace#digest``)
        status: Stored status, IN_PROGRESS or COMPLETED
        expiry: Epoch seconds after which the record is logically gone
        in_progress_expiry: Epoch milliseconds bounding an IN_PROGRESS marker
        response_data: Serialized response (COMPLETED records only)
        validation: Fingerprint of the originating payload
    """

    key: str
    status: RecordStatus
    expiry: int
    in_progress_expiry: int | None = None
    response_data: str | None = None
    validation: str | None = None

    def is_expired(self, now: float) -> bool:
        """Check if the record's TTL has elapsed at ``now`` (epoch seconds)."""
        return self.expiry <= now

    def effective_status(self, now: float) -> RecordStatus:
        """Return the stored status, or EXPIRED if the TTL has elapsed."""
        if self.is_expired(now):
            return RecordStatus.EXPIRED
        return self.status

    def is_in_progress_expired(self, now: float) -> bool:
        """Check if an IN_PROGRESS marker outlived its in-progress expiry."""
        if self.status is not RecordStatus.IN_PROGRESS:
            return False
        if self.in_progress_expiry is None:
            return False
        return self.in_progress_expiry <= to_millis(now)

    def completed(self, response_data: str, expiry: int) -> "DataRecord":
        """Return a COMPLETED copy of this record."""
        return replace(
            self,
            status=RecordStatus.COMPLETED,
            expiry=expiry,
            in_progress_expiry=None,
            response_data=response_data,
        )

    def to_dict(self) -> dict[str, object]:
        """Convert record to its wire shape."""
        return {
            "id": self.key,
            "status": self.status.value,
            "expiration": self.expiry,
            "in_progress_expiration": self.in_progress_expiry,
            "data": self.response_data,
            "validation": self.validation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "DataRecord":
        """Create record from its wire shape."""
        status = data["status"]
        if status not in (RecordStatus.IN_PROGRESS.value, RecordStatus.COMPLETED.value):
            raise ValueError(f"Invalid status: {status}")

        expiry = ensure_int(value=data["expiration"], default=None)
        if expiry is None:
            raise ValueError(f"Invalid expiration: {data['expiration']!r}")

        response_data = data.get("data")
        validation = data.get("validation")
        return cls(
            key=str(data["id"]),
            status=RecordStatus(status),
            expiry=expiry,
            in_progress_expiry=ensure_int(
                value=data.get("in_progress_expiration"), default=None
            ),
            response_data=str(response_data) if response_data is not None else None,
            validation=str(validation) if validation is not None else None,
        )
