"""Basic usage examples for idemguard."""

from idemguard import (
    AlreadyInProgressError,
    Coordinator,
    IdempotencyConfig,
    IdempotencyValidationError,
    MemoryStore,
    idempotent,
)


# Example 1: Basic idempotency
@idempotent(ttl=300)
def create_invoice(user_id, amount):
    """Create an invoice and charge the user."""
    print(f"💳 Charging user {user_id} ${amount}")
    print(f"📧 Sending invoice email to user {user_id}")
    return {"invoice_id": 12345, "amount": amount, "user_id": user_id}


# Example 2: Key taken from one field of the request
@idempotent(ttl=300, key="body.order_id", request_arg="event")
def handle_order(event, context=None):
    """Only one order per order_id, whatever else the request carries."""
    print(f"📦 Creating order from {event['body']}")
    return {"status": "created"}


# Example 3: Reject a reused key with a different payload
@idempotent(
    config=IdempotencyConfig(payload_validation_selector="amount"),
    key="payment_id",
    request_arg="request",
)
def charge(request):
    print(f"💳 Charging ${request['amount']}")
    return {"charged": request["amount"]}


if __name__ == "__main__":
    print("=" * 60)
    print("Example 1: Basic Idempotency")
    print("=" * 60)

    # First call - executes
    result1 = create_invoice(user_id=123, amount=100)
    print(f"Result: {result1}\n")

    # Second call with same args - replays the stored result
    print("Calling again with same arguments...")
    result2 = create_invoice(user_id=123, amount=100)
    print(f"Result: {result2}")
    print("Notice: No charging or email sending happened!\n")

    print("=" * 60)
    print("Example 2: Key Selector")
    print("=" * 60)

    handle_order({"body": '{"order_id": "A-1", "note": "first"}'})
    print("Retrying with a different note...")
    result = handle_order({"body": '{"order_id": "A-1", "note": "retry"}'})
    print(f"Result: {result} (replayed)\n")

    print("=" * 60)
    print("Example 3: Payload Validation")
    print("=" * 60)

    charge({"payment_id": "P-1", "amount": 10})
    try:
        charge({"payment_id": "P-1", "amount": 99})
    except IdempotencyValidationError as e:
        print(f"❌ Error: {e}")
        print("This is expected - the key was already used with another amount!\n")

    print("=" * 60)
    print("Example 4: Coordinator without a decorator")
    print("=" * 60)

    coordinator = Coordinator(MemoryStore(), namespace="refunds")

    def refund():
        try:
            # A duplicate arriving while the refund runs is rejected
            coordinator.handle({"refund_id": "R-1"}, lambda: "duplicate")
        except AlreadyInProgressError as e:
            print(f"❌ Concurrent duplicate: {e}")
        return {"refunded": True}

    print(f"Result: {coordinator.handle({'refund_id': 'R-1'}, refund)}")
    print(f"Replay: {coordinator.handle({'refund_id': 'R-1'}, refund)}")
