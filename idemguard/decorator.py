"""Main idempotent decorator implementation."""

import dataclasses
import functools
import inspect
import logging
from collections.abc import Callable
from typing import TypeVar

from .config import IdempotencyConfig, is_disabled
from .coordinator import AsyncCoordinator, Coordinator
from .key import KeyExtractor
from .serialization import JsonSerializer
from .stores import (
    AsyncMemoryStore,
    AsyncPersistenceStore,
    MemoryStore,
    PersistenceStore,
)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)

_RECEIVERS = ("self", "cls")


def idempotent(
    store: PersistenceStore | AsyncPersistenceStore | None = None,
    config: IdempotencyConfig | None = None,
    key: str | Callable[..., object] | None = None,
    ttl: int | None = None,
    request_arg: str | None = None,
    deadline: Callable[..., float | None] | None = None,
    serializer: JsonSerializer | None = None,
    namespace: str | None = None,
) -> Callable[[F], F]:
    """Decorator to make a function idempotent.

    Works on plain functions and on ``async def`` functions; the latter
    need an AsyncPersistenceStore.

    Args:
        store: Storage backend (defaults to MemoryStore / AsyncMemoryStore)
        config: Selectors, expiry and cache settings
        key: Selector string applied to the request, or a callable taking
            the function's arguments and returning the value to hash
        ttl: Time-to-live for idempotency records (seconds); overrides config
        request_arg: Name of the parameter holding the request
            (default: all bound arguments except self and cls)
        deadline: Callable taking the function's arguments and returning
            the seconds left to finish, used to bound the in-progress marker
        serializer: Response serializer (defaults to JSON)
        namespace: Key namespace (defaults to module.qualname)

    Example:
        @idempotent(store=RedisStore(client), key="order_id", request_arg="event")
        def create_order(event):
            charge_card(event["card"], event["amount"])
            return {"order_id": event["order_id"]}
    """
    if key is not None and not isinstance(key, str) and not callable(key):
        raise ValueError(f"key must be a selector string or a callable, got {key!r}")

    _config = config or IdempotencyConfig()
    if ttl is not None:
        _config = dataclasses.replace(_config, expires_after_seconds=ttl)
    if isinstance(key, str):
        _config = dataclasses.replace(_config, event_key_selector=key)
    key_func = key if callable(key) else None

    def decorator(func: F) -> F:
        _namespace = namespace or f"{func.__module__}.{func.__qualname__}"
        signature = inspect.signature(func)
        if request_arg is not None and request_arg not in signature.parameters:
            raise ValueError(
                f"{func.__qualname__} has no parameter named '{request_arg}'"
            )

        def derive(
            extractor: KeyExtractor, args: tuple[object, ...], kwargs: dict[str, object]
        ) -> tuple[str, str | None]:
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            if request_arg is not None:
                request = bound.arguments[request_arg]
            else:
                # The receiver of a method is not part of the request
                request = {
                    name: value
                    for name, value in bound.arguments.items()
                    if name not in _RECEIVERS
                }

            if key_func is not None:
                idem_key = extractor.key_from_value(key_func(*args, **kwargs))
                return idem_key, extractor.fingerprint_for(request)
            return extractor.derive(request)

        def deadline_hint(args: tuple[object, ...], kwargs: dict[str, object]) -> float | None:
            return deadline(*args, **kwargs) if deadline is not None else None

        if inspect.iscoroutinefunction(func):
            _store = store or AsyncMemoryStore()
            if not isinstance(_store, AsyncPersistenceStore):
                raise TypeError(
                    f"async function {func.__qualname__} needs an AsyncPersistenceStore"
                )
            async_coordinator: AsyncCoordinator = AsyncCoordinator(
                _store, _config, _namespace, serializer=serializer
            )

            @functools.wraps(func)
            async def async_wrapper(*args: object, **kwargs: object) -> object:
                if is_disabled():
                    logger.debug("Idempotency disabled, calling %s directly", _namespace)
                    return await func(*args, **kwargs)

                idem_key, fingerprint = derive(async_coordinator.key_extractor, args, kwargs)
                return await async_coordinator.execute(
                    idem_key,
                    lambda: func(*args, **kwargs),
                    fingerprint,
                    deadline_hint(args, kwargs),
                )

            async_wrapper.coordinator = async_coordinator  # type: ignore[attr-defined]
            return async_wrapper  # type: ignore[return-value]

        _store = store or MemoryStore()
        if not isinstance(_store, PersistenceStore):
            raise TypeError(f"function {func.__qualname__} needs a PersistenceStore")
        coordinator: Coordinator = Coordinator(
            _store, _config, _namespace, serializer=serializer
        )

        @functools.wraps(func)
        def wrapper(*args: object, **kwargs: object) -> object:
            if is_disabled():
                logger.debug("Idempotency disabled, calling %s directly", _namespace)
                return func(*args, **kwargs)

            idem_key, fingerprint = derive(coordinator.key_extractor, args, kwargs)
            return coordinator.execute(
                idem_key,
                lambda: func(*args, **kwargs),
                fingerprint,
                deadline_hint(args, kwargs),
            )

        wrapper.coordinator = coordinator  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
