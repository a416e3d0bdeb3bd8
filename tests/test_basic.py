"""Basic tests for idempotent decorator."""

import time

import pytest

from idemguard import (
    AlreadyInProgressError,
    IdempotencyConfig,
    IdempotencyKeyError,
    IdempotencyValidationError,
    MemoryStore,
    idempotent,
)
from idemguard.stores import AsyncMemoryStore


def test_basic_idempotency():
    """Test that function only executes once for same inputs."""
    call_count = 0

    @idempotent(ttl=10)
    def create_invoice(user_id, amount):
        nonlocal call_count
        call_count += 1
        return {"invoice_id": 123, "amount": amount}

    # First call
    result1 = create_invoice(user_id=1, amount=100)
    assert result1 == {"invoice_id": 123, "amount": 100}
    assert call_count == 1

    # Second call with same args - should return stored result
    result2 = create_invoice(user_id=1, amount=100)
    assert result2 == {"invoice_id": 123, "amount": 100}
    assert call_count == 1  # Not incremented

    # Positional and keyword forms bind to the same request
    create_invoice(1, 100)
    assert call_count == 1

    # Different args - should execute again
    result3 = create_invoice(user_id=2, amount=200)
    assert result3 == {"invoice_id": 123, "amount": 200}
    assert call_count == 2


def test_failure_allows_retry():
    """Test that failures clear the in-progress marker."""
    call_count = 0

    @idempotent(ttl=10)
    def failing_function(user_id):
        nonlocal call_count
        call_count += 1
        if call_count == 1:
            raise ValueError("First call fails")
        return {"success": True}

    with pytest.raises(ValueError, match="First call fails"):
        failing_function(user_id=1)

    assert call_count == 1

    # Second call should be allowed (retry)
    result = failing_function(user_id=1)
    assert result == {"success": True}
    assert call_count == 2


def test_different_arg_types():
    """Test key generation with various argument types."""
    call_count = 0

    @idempotent(ttl=10)
    def process_data(user_id, tags, metadata):
        nonlocal call_count
        call_count += 1
        return {"processed": True}

    process_data(1, ["a", "b"], {"key": "value", "other": 2})
    assert call_count == 1

    # Same args, different dict order - same key
    process_data(1, ["a", "b"], {"other": 2, "key": "value"})
    assert call_count == 1

    # Different order in list - different key
    process_data(1, ["b", "a"], {"key": "value", "other": 2})
    assert call_count == 2


def test_custom_key_function():
    """Test using a callable to pick the idempotency value."""
    call_count = 0

    @idempotent(ttl=10, key=lambda user_id, amount: f"invoice:{user_id}")
    def create_invoice(user_id, amount):
        nonlocal call_count
        call_count += 1
        return {"invoice_id": 123, "amount": amount}

    create_invoice(user_id=1, amount=100)
    assert call_count == 1

    # Different amount, but same user_id - replayed
    result = create_invoice(user_id=1, amount=200)
    assert result == {"invoice_id": 123, "amount": 100}  # Original result
    assert call_count == 1


def test_key_selector_with_request_arg():
    """Test selecting the key from one parameter of the function."""
    call_count = 0

    @idempotent(key="body.order_id", request_arg="event")
    def handler(event, context=None):
        nonlocal call_count
        call_count += 1
        return {"status": "created"}

    handler({"body": '{"order_id": "A-1", "qty": 1}'}, context="ctx-1")
    handler({"body": '{"order_id": "A-1", "qty": 2}'}, context="ctx-2")
    assert call_count == 1

    with pytest.raises(IdempotencyKeyError):
        handler({"body": "{}"})
    assert call_count == 1


def test_payload_validation():
    config = IdempotencyConfig(payload_validation_selector="amount")

    @idempotent(config=config, key="user_id", request_arg="request")
    def charge(request):
        return {"charged": request["amount"]}

    assert charge({"user_id": 1, "amount": 5}) == {"charged": 5}
    assert charge({"user_id": 1, "amount": 5}) == {"charged": 5}

    with pytest.raises(IdempotencyValidationError):
        charge({"user_id": 1, "amount": 6})


def test_shared_store():
    """Test that multiple functions can share a store."""
    store = MemoryStore()
    call_count_a = 0
    call_count_b = 0

    @idempotent(ttl=10, store=store)
    def function_a(x):
        nonlocal call_count_a
        call_count_a += 1
        return x * 2

    @idempotent(ttl=20, store=store)
    def function_b(x):
        nonlocal call_count_b
        call_count_b += 1
        return x * 3

    # Each function should have its own key space
    assert function_a(5) == 10
    assert function_b(5) == 15
    assert call_count_a == 1
    assert call_count_b == 1

    # Calling again should replay
    assert function_a(5) == 10
    assert function_b(5) == 15
    assert call_count_a == 1
    assert call_count_b == 1


def test_reentrant_call_is_in_progress():
    """A duplicate arriving while the first call runs is rejected."""

    @idempotent(ttl=10)
    def reentrant(order_id, depth=0):
        if depth == 0:
            return reentrant(order_id, depth=0)
        return "unreachable"

    with pytest.raises(AlreadyInProgressError):
        reentrant("A-1")


def test_deadline_bounds_in_progress_marker():
    store = MemoryStore()
    markers = []

    @idempotent(
        store=store,
        config=IdempotencyConfig(in_progress_expiry_seconds=300),
        request_arg="order_id",
        deadline=lambda order_id, remaining: remaining,
    )
    def place_order(order_id, remaining):
        key = place_order.coordinator.key_extractor.key_for(order_id)
        markers.append(store.fetch_record(key).in_progress_expiry)
        return order_id

    before = time.time()
    place_order("A-1", remaining=2.0)
    after = time.time()

    assert int((before + 2.0) * 1000) <= markers[0] <= int((after + 2.0) * 1000)


def test_disabled_by_environment(monkeypatch):
    monkeypatch.setenv("IDEMPOTENCY_DISABLED", "true")
    call_count = 0

    @idempotent(ttl=10)
    def create_invoice(user_id):
        nonlocal call_count
        call_count += 1
        return call_count

    assert create_invoice(user_id=1) == 1
    assert create_invoice(user_id=1) == 2


def test_invalid_arguments():
    with pytest.raises(ValueError):
        idempotent(key=42)

    with pytest.raises(ValueError):

        @idempotent(request_arg="missing")
        def handler(event):
            return event

    with pytest.raises(TypeError):

        @idempotent(store=AsyncMemoryStore())
        def sync_handler(event):
            return event


def test_methods_share_keys_across_instances():
    """The instance a method is called on does not change its key."""
    store = MemoryStore()
    call_count = 0

    class PaymentService:
        @idempotent(store=store)
        def charge(self, amount):
            nonlocal call_count
            call_count += 1
            return {"charged": amount}

        @classmethod
        @idempotent(store=store)
        def refund(cls, amount):
            nonlocal call_count
            call_count += 1
            return {"refunded": amount}

    assert PaymentService().charge(5) == {"charged": 5}
    assert PaymentService().charge(5) == {"charged": 5}
    assert call_count == 1

    PaymentService.refund(5)
    PaymentService.refund(5)
    assert call_count == 2


def test_unhashable_argument_is_rejected():
    """Arguments without a stable representation cannot form a key."""
    call_count = 0

    @idempotent()
    def process(handle):
        nonlocal call_count
        call_count += 1

    with pytest.raises(IdempotencyKeyError):
        process(object())
    assert call_count == 0
