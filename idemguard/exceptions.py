"""Exceptions raised to callers of idempotent operations."""


class IdempotencyError(Exception):
    """Base exception for idempotency-related errors."""


class IdempotencyKeyError(IdempotencyError):
    """Raise when no idempotency key can be derived from the request."""

    def __init__(self, selector: str | None, reason: str = "no data found") -> None:
        self.selector = selector
        self.reason = reason
        target = f"selector '{selector}'" if selector else "request"
        super().__init__(
            f"Unable to create an idempotency key from {target}: {reason}"
        )


class AlreadyInProgressError(IdempotencyError):
    """Raise when another invocation currently holds the key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Execution already in progress with idempotency key: {key}")


class IdempotencyValidationError(IdempotencyError):
    """Raise when a key is reused with a different payload."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            f"Payload does not match stored record for idempotency key: {key}"
        )


class InconsistentStateError(IdempotencyError):
    """Raise when the store keeps returning contradictory results."""

    def __init__(self, key: str, retries: int) -> None:
        self.key = key
        self.retries = retries
        super().__init__(
            f"save_in_progress and get_record returned inconsistent results "
            f"for key '{key}' after {retries} retries"
        )


class PersistenceLayerError(IdempotencyError):
    """Raise when the persistence backend fails."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class SerializationError(IdempotencyError):
    """Raise when result cannot be serialized."""

    def __init__(self, value: object, reason: str) -> None:
        self.value = value
        self.reason = reason
        super().__init__(f"Cannot serialize result: {reason}")
