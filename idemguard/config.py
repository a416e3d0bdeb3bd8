"""Configuration for idempotent operations."""

import hashlib
import os
from collections.abc import Mapping
from dataclasses import dataclass

from .utils import env_flag

DISABLED_ENV = "IDEMPOTENCY_DISABLED"

DEFAULT_EXPIRES_AFTER_SECONDS = 3600
DEFAULT_LOCAL_CACHE_MAX_ITEMS = 256


@dataclass
class IdempotencyConfig:
    """Settings shared by a coordinator, its key extractor and its store.

    Attributes:
        event_key_selector: Selector of the request part used as the key
            (None hashes the whole request)
        payload_validation_selector: Selector of the request part whose hash
            must match on replay (None disables validation)
        use_local_cache: Mirror completed records in an in-process LRU cache
        local_cache_max_items: Capacity of the local cache
        expires_after_seconds: Time-to-live of idempotency records
        in_progress_expiry_seconds: How long an in-progress marker may live
            (None = expires_after_seconds)
        hash_function: hashlib algorithm used for keys and fingerprints
    """

    event_key_selector: str | None = None
    payload_validation_selector: str | None = None
    use_local_cache: bool = False
    local_cache_max_items: int = DEFAULT_LOCAL_CACHE_MAX_ITEMS
    expires_after_seconds: int = DEFAULT_EXPIRES_AFTER_SECONDS
    in_progress_expiry_seconds: float | None = None
    hash_function: str = "sha256"

    def __post_init__(self) -> None:
        if self.expires_after_seconds <= 0:
            raise ValueError(
                f"expires_after_seconds must be positive, got {self.expires_after_seconds}"
            )
        if self.in_progress_expiry_seconds is not None and self.in_progress_expiry_seconds <= 0:
            raise ValueError(
                "in_progress_expiry_seconds must be positive, "
                f"got {self.in_progress_expiry_seconds}"
            )
        if self.local_cache_max_items <= 0:
            raise ValueError(
                f"local_cache_max_items must be positive, got {self.local_cache_max_items}"
            )
        if self.hash_function not in hashlib.algorithms_available:
            raise ValueError(f"Unknown hash function '{self.hash_function}'")

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: object
    ) -> "IdempotencyConfig":
        """Build a config from IDEMPOTENCY_* environment variables.

        Explicit keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        if "IDEMPOTENCY_EXPIRES_AFTER_SECONDS" in env:
            values["expires_after_seconds"] = int(env["IDEMPOTENCY_EXPIRES_AFTER_SECONDS"])
        if "IDEMPOTENCY_IN_PROGRESS_EXPIRY_SECONDS" in env:
            values["in_progress_expiry_seconds"] = float(
                env["IDEMPOTENCY_IN_PROGRESS_EXPIRY_SECONDS"]
            )
        if "IDEMPOTENCY_USE_LOCAL_CACHE" in env:
            values["use_local_cache"] = env_flag(env["IDEMPOTENCY_USE_LOCAL_CACHE"])
        if "IDEMPOTENCY_LOCAL_CACHE_MAX_ITEMS" in env:
            values["local_cache_max_items"] = int(env["IDEMPOTENCY_LOCAL_CACHE_MAX_ITEMS"])
        if "IDEMPOTENCY_HASH_FUNCTION" in env:
            values["hash_function"] = env["IDEMPOTENCY_HASH_FUNCTION"]

        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]


def is_disabled(environ: Mapping[str, str] | None = None) -> bool:
    """Check the IDEMPOTENCY_DISABLED kill switch."""
    env = os.environ if environ is None else environ
    return env_flag(env.get(DISABLED_ENV))
