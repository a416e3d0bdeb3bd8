"""Serialization of function responses for storage and replay."""

import dataclasses
import json
from typing import Generic, TypeVar

from .exceptions import SerializationError

T = TypeVar("T")


class JsonSerializer(Generic[T]):
    """Store responses as JSON text.

    Replayed responses are the JSON round-trip of the original, so tuples
    come back as lists.
    """

    def to_data(self, response: T) -> str:
        """Serialize result for storage.

        Raises:
            SerializationError: If result cannot be serialized
        """
        try:
            return json.dumps(self._encode(response))
        except (TypeError, ValueError) as e:
            raise SerializationError(response, str(e)) from e

    def from_data(self, data: str) -> T:
        """Deserialize result from storage."""
        return self._decode(json.loads(data))

    def _encode(self, response: T) -> object:
        return response

    def _decode(self, payload: object) -> T:
        return payload  # type: ignore[return-value]


class DataclassSerializer(JsonSerializer[T]):
    """Store dataclass responses and rebuild the same type on replay.

    Args:
        response_type: The dataclass returned by the wrapped function
    """

    def __init__(self, response_type: type[T]) -> None:
        if not dataclasses.is_dataclass(response_type):
            raise TypeError(f"{response_type!r} is not a dataclass")
        self.response_type = response_type

    def _encode(self, response: T) -> object:
        if not isinstance(response, self.response_type):
            raise TypeError(
                f"expected {self.response_type.__name__}, got {type(response).__name__}"
            )
        return dataclasses.asdict(response)  # type: ignore[call-overload]

    def _decode(self, payload: object) -> T:
        if not isinstance(payload, dict):
            raise ValueError(f"expected an object for {self.response_type.__name__}")
        return self.response_type(**payload)
