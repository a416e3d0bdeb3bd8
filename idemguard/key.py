"""Key generation for idempotent operations."""

import dataclasses
import datetime
import decimal
import hashlib
import json
import re
import uuid
from enum import Enum

from .exceptions import IdempotencyKeyError

_SEGMENT = re.compile(r"([^.\[\]]+)|\[(-?\d+)\]")
_MISSING = object()


class KeyExtractor:
    """Derive idempotency keys and payload fingerprints from requests.

    Args:
        namespace: Identifies the calling operation; prefixes every key
        key_selector: Selector of the request part to hash (None = whole request)
        validation_selector: Selector of the request part to fingerprint
        hash_function: hashlib algorithm name

    The key format is: namespace#hexdigest
    """

    def __init__(
        self,
        namespace: str,
        key_selector: str | None = None,
        validation_selector: str | None = None,
        hash_function: str = "sha256",
    ) -> None:
        self.namespace = namespace
        self.key_selector = key_selector or None
        self.validation_selector = validation_selector or None
        self.hash_function = hash_function

    @property
    def validation_enabled(self) -> bool:
        return self.validation_selector is not None

    def derive(self, request: object) -> tuple[str, str | None]:
        """Return ``(key, fingerprint)`` for a request.

        Raises:
            IdempotencyKeyError: If the key selector resolves to nothing
        """
        return self.key_for(request), self.fingerprint_for(request)

    def key_for(self, request: object) -> str:
        return self.key_from_value(select(request, self.key_selector))

    def key_from_value(self, value: object) -> str:
        """Build a key from an already selected value."""
        if is_missing(value):
            raise IdempotencyKeyError(self.key_selector)
        return f"{self.namespace}#{hash_value(value, self.hash_function)}"

    def fingerprint_for(self, request: object) -> str | None:
        if self.validation_selector is None:
            return None
        value = select(request, self.validation_selector)
        return hash_value(value, self.hash_function)


def select(request: object, selector: str | None) -> object:
    """Resolve a dotted selector such as ``body.items[0].sku``.

    Strings met before the path is exhausted are decoded as JSON, so a
    selector can reach into a JSON-encoded body. Unresolvable paths
    return None.
    """
    current = _to_plain(request)
    if not selector:
        return current

    for name, index in _SEGMENT.findall(selector):
        if isinstance(current, (str, bytes)):
            try:
                current = json.loads(current)
            except ValueError:
                return None

        if index:
            if not isinstance(current, list):
                return None
            position = int(index)
            if not -len(current) <= position < len(current):
                return None
            current = current[position]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(name, _MISSING)
            if current is _MISSING:
                return None

        current = _to_plain(current)

    return current


def is_missing(value: object) -> bool:
    """Check whether a selected value is unusable as an idempotency key."""
    if value is None or value == "":
        return True
    if isinstance(value, (list, tuple, dict)) and not value:
        return True
    if isinstance(value, (list, tuple)):
        return all(item is None for item in value)
    return False


def canonicalize(value: object) -> str:
    """Serialize a value to a stable string representation."""
    return json.dumps(
        _normalize(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def hash_value(value: object, hash_function: str = "sha256") -> str:
    """Return the hex digest of a value's canonical form."""
    digest = hashlib.new(hash_function)
    digest.update(canonicalize(value).encode("utf-8"))
    return digest.hexdigest()


def _normalize(value: object) -> object:
    """Convert a value to JSON-compatible data with a stable ordering.

    Raises:
        IdempotencyKeyError: If the value has no stable representation
    """
    value = _to_plain(value)

    # Handle common types directly
    if isinstance(value, (str, int, float, bool, type(None))):
        return value

    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]

    if isinstance(value, dict):
        normalized: dict[str, object] = {}
        for k, v in value.items():
            name = str(k)
            if name in normalized:
                raise IdempotencyKeyError(None, f"mapping keys collide as '{name}'")
            normalized[name] = _normalize(v)
        return normalized

    # Handle sets (convert to sorted list)
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(v) for v in value), key=canonicalize)

    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")

    if isinstance(value, Enum):
        return _normalize(value.value)

    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()

    if isinstance(value, (decimal.Decimal, uuid.UUID)):
        return str(value)

    # repr() of arbitrary objects embeds their address
    raise IdempotencyKeyError(None, f"cannot hash a {type(value).__name__} value")


def _to_plain(value: object) -> object:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        return model_dump()
    return value
