"""Examples of using different storage backends."""

import asyncio

import redis
import redis.asyncio

from idemguard import IdempotencyConfig, idempotent
from idemguard.stores import AsyncRedisStore, FileStore, RedisStore

# Example 1: MemoryStore (default, single process only)
print("=" * 60)
print("Example 1: MemoryStore (in-memory, single process)")
print("=" * 60)


@idempotent(ttl=300)
def create_invoice_memory(user_id: int, amount: float) -> dict:
    """Create an invoice (using default MemoryStore)."""
    print(f"  → Creating invoice for user {user_id}, amount ${amount}")
    return {"invoice_id": 123, "user_id": user_id, "amount": amount}


# First call - executes
result1 = create_invoice_memory(user_id=1, amount=100.0)
print(f"First call result: {result1}")

# Second call - replays the stored result
result2 = create_invoice_memory(user_id=1, amount=100.0)
print(f"Second call result: {result2}")

print()

# Example 2: FileStore (persistent, multi-process safe)
print("=" * 60)
print("Example 2: FileStore (persistent, multi-process safe)")
print("=" * 60)

file_store = FileStore("/tmp/idemguard_demo")


@idempotent(store=file_store, ttl=300)
def create_invoice_file(user_id: int, amount: float) -> dict:
    """Create an invoice (using FileStore)."""
    print(f"  → Creating invoice for user {user_id}, amount ${amount}")
    return {"invoice_id": 456, "user_id": user_id, "amount": amount}


result1 = create_invoice_file(user_id=1, amount=100.0)
print(f"First call result: {result1}")

# Replayed even across process restarts
result2 = create_invoice_file(user_id=1, amount=100.0)
print(f"Second call result: {result2}")

print()

# Example 3: RedisStore (distributed, multi-server safe)
print("=" * 60)
print("Example 3: RedisStore with a local cache")
print("=" * 60)

try:
    redis_client = redis.Redis(host="localhost", port=6379, db=0)
    redis_client.ping()  # Test connection

    redis_store = RedisStore(redis_client, prefix="myapp:")

    @idempotent(
        store=redis_store,
        config=IdempotencyConfig(use_local_cache=True, expires_after_seconds=300),
    )
    def create_invoice_redis(user_id: int, amount: float) -> dict:
        """Create an invoice (using RedisStore)."""
        print(f"  → Creating invoice for user {user_id}, amount ${amount}")
        return {"invoice_id": 789, "user_id": user_id, "amount": amount}

    result1 = create_invoice_redis(user_id=1, amount=100.0)
    print(f"First call result: {result1}")

    # Served from the local cache without a Redis round trip
    result2 = create_invoice_redis(user_id=1, amount=100.0)
    print(f"Second call result: {result2}")

    # Example 4: asyncio handlers
    async_store = AsyncRedisStore(redis.asyncio.Redis(), prefix="myapp:async:")

    @idempotent(store=async_store, ttl=300)
    async def send_receipt(order_id: str) -> dict:
        print(f"  → Sending receipt for {order_id}")
        return {"sent": True}

    async def main() -> None:
        print(await send_receipt("A-1"))
        print(await send_receipt("A-1"))
        await async_store.clear()

    asyncio.run(main())

    redis_store.clear()
except redis.ConnectionError as e:
    print(f"⚠️  Redis not available: {e}")
    print("   Make sure Redis is running: redis-server")

print()

# Cleanup
print("Cleaning up demo files...")
file_store.clear()
