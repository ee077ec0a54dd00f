"""Redis 键值缓存：值以 JSON 存储，键统一加命名空间前缀"""
from __future__ import annotations

import json
from typing import Any, Optional

from redis import asyncio as aioredis

from core.config import RedisSettings, settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class RedisCache:

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._prefix = f"{namespace.strip(':')}:" if namespace.strip(":") else ""

    @classmethod
    def from_settings(cls, config: RedisSettings, namespace: Optional[str] = None) -> "RedisCache":
        if not config.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis缓存")
        client = aioredis.from_url(
            config.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=config.max_connections,
        )
        return cls(client, namespace=config.namespace if namespace is None else namespace)

    def key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Any:
        raw = await self._client.get(self.key(key))
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        # ttl 为空或非正数时不过期
        expire = ttl if ttl and ttl > 0 else None
        await self._client.set(self.key(key), json.dumps(value, default=str), ex=expire)

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(self.key(key)))

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def aclose(self) -> None:
        await self._client.aclose()


_cache_instance: Optional[RedisCache] = None


async def init_redis_cache(namespace: Optional[str] = None) -> RedisCache:
    """应用启动时调用一次；重复调用返回同一实例"""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = RedisCache.from_settings(settings.redis, namespace)
    return _cache_instance


def get_redis_cache() -> Optional[RedisCache]:
    """未初始化（或初始化失败已关闭）时返回 None"""
    return _cache_instance


async def shutdown_redis_cache() -> None:
    global _cache_instance
    if _cache_instance is None:
        return
    cache, _cache_instance = _cache_instance, None
    try:
        await cache.aclose()
    except Exception as exc:
        logger.warning("redis_close_failed", error=str(exc))
