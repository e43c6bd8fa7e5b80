"""
Redis 캐시 서비스 (분배표 등 읽기 캐시 전용)

- 캐시 장애는 요청 실패로 번지지 않는다: 예외 대신 None/False 반환
- REDIS_ENABLED=False면 모든 조회가 cache miss
- 키는 REDIS_KEY_PREFIX로 네임스페이스를 나눈다
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from backoffice.config import Settings

logger = logging.getLogger(__name__)


class RedisService:
    def __init__(self, settings: Settings):
        self._settings = settings
        self._prefix = settings.REDIS_KEY_PREFIX
        self._client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return bool(self._settings.REDIS_ENABLED)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def _connect(self) -> Optional[redis.Redis]:
        if not self.enabled:
            return None
        if self._client is not None:
            return self._client

        client = redis.Redis(
            host=self._settings.REDIS_HOST,
            port=self._settings.REDIS_PORT,
            db=self._settings.REDIS_DB,
            password=self._settings.REDIS_PASSWORD or None,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable at {self._settings.REDIS_HOST}:{self._settings.REDIS_PORT}: {e}")
            await client.aclose()
            return None

        self._client = client
        return client

    async def get(self, key: str) -> Optional[Any]:
        client = await self._connect()
        if client is None:
            return None
        try:
            raw = await client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"Cache read failed: {key} ({e})")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Dropping undecodable cache entry: {key}")
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        client = await self._connect()
        if client is None:
            return False
        try:
            await client.set(self._key(key), json.dumps(value), ex=ttl_seconds)
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Cache write failed: {key} ({e})")
            return False

    async def delete(self, key: str) -> bool:
        client = await self._connect()
        if client is None:
            return False
        try:
            return bool(await client.delete(self._key(key)))
        except redis.RedisError as e:
            logger.warning(f"Cache invalidation failed: {key} ({e})")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
