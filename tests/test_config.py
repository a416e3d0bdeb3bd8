"""Tests for configuration loading."""

import pytest

from idemguard import IdempotencyConfig, is_disabled
from idemguard.utils import ensure_int, env_flag


def test_defaults():
    config = IdempotencyConfig()

    assert config.event_key_selector is None
    assert config.payload_validation_selector is None
    assert config.use_local_cache is False
    assert config.local_cache_max_items == 256
    assert config.expires_after_seconds == 3600
    assert config.in_progress_expiry_seconds is None
    assert config.hash_function == "sha256"


def test_from_env():
    environ = {
        "IDEMPOTENCY_EXPIRES_AFTER_SECONDS": "120",
        "IDEMPOTENCY_IN_PROGRESS_EXPIRY_SECONDS": "7.5",
        "IDEMPOTENCY_USE_LOCAL_CACHE": "yes",
        "IDEMPOTENCY_LOCAL_CACHE_MAX_ITEMS": "10",
        "IDEMPOTENCY_HASH_FUNCTION": "md5",
    }

    config = IdempotencyConfig.from_env(environ)

    assert config.expires_after_seconds == 120
    assert config.in_progress_expiry_seconds == 7.5
    assert config.use_local_cache is True
    assert config.local_cache_max_items == 10
    assert config.hash_function == "md5"


def test_from_env_overrides_win():
    environ = {"IDEMPOTENCY_EXPIRES_AFTER_SECONDS": "120"}

    config = IdempotencyConfig.from_env(
        environ, expires_after_seconds=30, event_key_selector="order_id"
    )

    assert config.expires_after_seconds == 30
    assert config.event_key_selector == "order_id"


def test_from_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv("IDEMPOTENCY_EXPIRES_AFTER_SECONDS", "45")

    assert IdempotencyConfig.from_env().expires_after_seconds == 45


@pytest.mark.parametrize(
    "kwargs",
    [
        {"expires_after_seconds": 0},
        {"in_progress_expiry_seconds": -1},
        {"local_cache_max_items": 0},
        {"hash_function": "not-a-hash"},
    ],
)
def test_invalid_config(kwargs):
    with pytest.raises(ValueError):
        IdempotencyConfig(**kwargs)


def test_is_disabled():
    assert not is_disabled({})
    assert not is_disabled({"IDEMPOTENCY_DISABLED": "false"})
    assert is_disabled({"IDEMPOTENCY_DISABLED": "1"})
    assert is_disabled({"IDEMPOTENCY_DISABLED": "TRUE"})


def test_env_flag():
    assert env_flag("on")
    assert not env_flag(None)
    assert not env_flag("0")


def test_ensure_int():
    assert ensure_int("12") == 12
    assert ensure_int(3.9) == 3
    assert ensure_int(None) == 0
    assert ensure_int("n/a", default=-1) == -1
    assert ensure_int(True, default=5) == 5
