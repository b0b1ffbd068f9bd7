"""
Key-value persistence for progression scalars.

Two backends share one async interface:
- InMemoryKeyValueStore: process-local dict (tests, offline sessions)
- RedisKeyValueStore: redis-py asyncio client, JSON-encoded values,
  multi-key writes applied atomically in a MULTI/EXEC pipeline
"""

import json
import logging
from typing import Any, Mapping, Optional, Protocol

import redis.asyncio as redis

from healthloop.exceptions import PersistenceError, wrap_external_exception

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Persistence collaborator used by the progression store"""

    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def set_many(self, values: Mapping[str, Any]) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store; values are copied through JSON like a real backend"""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._data: dict[str, str] = {}
        self.writes = 0
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Mapping[str, Any]) -> None:
        # Encode everything first so a bad value leaves the store untouched
        encoded = {key: json.dumps(value) for key, value in values.items()}
        self._data.update(encoded)
        self.writes += 1

    def snapshot(self) -> dict[str, Any]:
        """Decoded copy of everything stored"""
        return {key: json.loads(raw) for key, raw in self._data.items()}


class RedisKeyValueStore:
    """
    Redis-backed store.

    Keys are namespaced with ``prefix`` (one namespace per user/session).
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", prefix: str = ""):
        self.redis_url = redis_url
        self.prefix = prefix
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is not None:
            return
        try:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            await self._client.ping()
            logger.info(f"✅ Redis connected: {self.redis_url}")
        except redis.RedisError as e:
            self._client = None
            raise PersistenceError(
                f"Redis connection failed: {e}",
                operation="connect",
                cause=e,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _require_client(self) -> redis.Redis:
        if self._client is None:
            await self.connect()
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str, default: Any = None) -> Any:
        client = await self._require_client()
        try:
            raw = await client.get(self._key(key))
        except redis.RedisError as e:
            raise wrap_external_exception(e, operation="get", context={"keys": [key]})
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON value stored at '{self._key(key)}'")
            return default

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Mapping[str, Any]) -> None:
        client = await self._require_client()
        encoded = {self._key(key): json.dumps(value) for key, value in values.items()}
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.mset(encoded)
                await pipe.execute()
        except redis.RedisError as e:
            raise wrap_external_exception(e, operation="set_many", context={"keys": list(values.keys())})
