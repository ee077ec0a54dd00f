"""
Checkout state stores: where initiation leaves the correlation data the
return URL will need.

Keys look like ``{namespace}:checkout:{session_id}:pending_checkout`` and
expire after ``settings.checkout.state_ttl_seconds``.
"""
from __future__ import annotations

import time
from typing import Optional

from core.config import settings
from core.logging_config import get_logger
from domain.checkout.entity import CheckoutState
from infrastructure.cache.redis_cache import RedisCache, get_redis_cache


logger = get_logger(__name__)


def _state_key(session_id: str, name: Optional[str] = None) -> str:
    return f"checkout:{session_id}:{name or settings.checkout.state_key}"


class RedisCheckoutStateStore:
    def __init__(self, cache: RedisCache, *, ttl: Optional[int] = None) -> None:
        self._cache = cache
        self._ttl = settings.checkout.state_ttl_seconds if ttl is None else ttl

    async def save(self, session_id: str, state: CheckoutState) -> None:
        await self._cache.set(_state_key(session_id), state.to_dict(), ttl=self._ttl)

    async def load(self, session_id: str) -> Optional[CheckoutState]:
        data = await self._cache.get(_state_key(session_id))
        return CheckoutState.from_dict(data) if isinstance(data, dict) else None

    async def clear(self, session_id: str) -> None:
        await self._cache.delete(_state_key(session_id))


class InMemoryCheckoutStateStore:
    """进程内实现：单实例开发环境和测试使用，不跨进程共享"""

    def __init__(self, *, ttl: Optional[int] = None) -> None:
        self._ttl = settings.checkout.state_ttl_seconds if ttl is None else ttl
        self._items: dict[str, tuple[float, dict]] = {}

    async def save(self, session_id: str, state: CheckoutState) -> None:
        self._items[_state_key(session_id)] = (time.monotonic() + self._ttl, state.to_dict())

    async def load(self, session_id: str) -> Optional[CheckoutState]:
        key = _state_key(session_id)
        item = self._items.get(key)
        if item is None:
            return None
        expires_at, data = item
        if self._ttl > 0 and time.monotonic() >= expires_at:
            self._items.pop(key, None)
            return None
        return CheckoutState.from_dict(data)

    async def clear(self, session_id: str) -> None:
        self._items.pop(_state_key(session_id), None)


_fallback_store: Optional[InMemoryCheckoutStateStore] = None


def get_checkout_state_store():
    """Redis 可用时用 Redis，否则退回进程内存储"""
    global _fallback_store
    cache = get_redis_cache()
    if cache is not None:
        return RedisCheckoutStateStore(cache)
    if _fallback_store is None:
        logger.warning("checkout_state_store_in_memory", reason="redis not initialized")
        _fallback_store = InMemoryCheckoutStateStore()
    return _fallback_store
