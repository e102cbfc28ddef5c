from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from gateway.log import log_event


def generate_cache_key(structured_data: dict[str, Any], notes: str | list[str]) -> str:
    data_text = json.dumps(structured_data, sort_keys=True, separators=(",", ":"), default=str)
    notes_text = "|".join(notes) if isinstance(notes, list) else notes
    digest = hashlib.md5((data_text + notes_text).encode("utf-8")).hexdigest()
    return f"analysis:{digest}"


class RedisCache:
    """JSON values in Redis. Outages degrade to cache misses, never errors."""

    def __init__(self, url: str, client: Redis | None = None) -> None:
        self.url = url
        self._client = client

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        if self._client is None:
            self._client = Redis.from_url(self.url, decode_responses=True)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, key: str) -> Any | None:
        if self._client is None:
            log_event(logging.WARNING, "cache_not_connected", op="get", key=key)
            return None
        try:
            value = await self._client.get(key)
        except RedisError as exc:
            log_event(logging.ERROR, "cache_error", op="get", key=key, error=str(exc))
            return None
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError:
            return value

    async def set(self, key: str, value: Any, ttl_s: int = 3600) -> bool:
        if self._client is None:
            log_event(logging.WARNING, "cache_not_connected", op="set", key=key)
            return False
        try:
            await self._client.set(key, json.dumps(value, default=str), ex=ttl_s)
        except RedisError as exc:
            log_event(logging.ERROR, "cache_error", op="set", key=key, error=str(exc))
            return False
        return True

    async def delete(self, key: str) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.delete(key)
        except RedisError as exc:
            log_event(logging.ERROR, "cache_error", op="delete", key=key, error=str(exc))
            return False
        return True

    async def incr_window(self, key: str, ttl_s: int) -> int | None:
        if self._client is None:
            return None
        try:
            count = await self._client.incr(key)
            if count == 1:
                await self._client.expire(key, ttl_s)
        except RedisError as exc:
            log_event(logging.ERROR, "cache_error", op="incr", key=key, error=str(exc))
            return None
        return int(count)

    async def health_check(self) -> dict:
        if self._client is None:
            return {"status": "disconnected", "message": "Redis not connected"}
        try:
            await self._client.ping()
        except RedisError as exc:
            return {"status": "unhealthy", "message": str(exc)}
        return {"status": "healthy", "message": "Redis responding normally"}
