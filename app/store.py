"""Key-value store adapter used by every component of the shortener.

The shorten and resolve pipelines never talk to Redis directly. They receive a
``KeyValueStore`` at construction time, which keeps the core free of a global
client and lets tests substitute an in-memory double.

Contract
========
::
    get(key)                         -> str          (KeyNotFoundError if absent)
    set(key, value, ttl, nx=False)   -> bool         (False only when nx and key exists)
    incr(key) / decr(key)            -> int
    ttl(key)                         -> int seconds  (negative when missing / no expiry)
    expire(key, ttl)                 -> bool
    incr_and_expire(key, ttl)        -> int          (one MULTI/EXEC batch)
    ping()                           -> bool

Every Redis failure is re-raised as ``StoreUnavailableError`` so callers can
choose their own fail-open / fail-closed policy without importing redis.

Key Behaviours
===============
- ``incr_and_expire`` queues INCR then EXPIRE in a transactional pipeline, so
  no other client observes the counter without its TTL.
- ``set(..., nx=True)`` maps to ``SET key value EX ttl NX``.
- TTLs are whole seconds.
"""

import abc
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from prometheus_client import Counter
from redis.exceptions import RedisError

from app.exceptions import KeyNotFoundError, StoreUnavailableError

__all__ = ["KeyValueStore", "RedisStore"]

logger = logging.getLogger("urlshortener")

STORE_ERRORS_TOTAL = Counter(
    "url_shortener_store_errors_total",
    "Key-value store operations that failed",
    ["operation"],
)

T = TypeVar("T")


class KeyValueStore(abc.ABC):
    """Minimal key-value contract the shortener relies on."""

    @abc.abstractmethod
    async def get(self, key: str) -> str: ...

    @abc.abstractmethod
    async def set(self, key: str, value: str, ttl: int, nx: bool = False) -> bool: ...

    @abc.abstractmethod
    async def incr(self, key: str) -> int: ...

    @abc.abstractmethod
    async def decr(self, key: str) -> int: ...

    @abc.abstractmethod
    async def ttl(self, key: str) -> int: ...

    @abc.abstractmethod
    async def expire(self, key: str, ttl: int) -> bool: ...

    @abc.abstractmethod
    async def incr_and_expire(self, key: str, ttl: int) -> int: ...

    @abc.abstractmethod
    async def ping(self) -> bool: ...

    async def close(self) -> None:
        return None


def _wrap_redis_errors(operation: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except RedisError as exc:
                STORE_ERRORS_TOTAL.labels(operation=operation).inc()
                logger.debug(f"Redis {operation} failed: {exc}")
                raise StoreUnavailableError(operation, exc) from exc

        return wrapper

    return decorator


class RedisStore(KeyValueStore):
    """``KeyValueStore`` backed by a ``redis.asyncio`` client.

    The client is expected to use ``decode_responses=True`` so values come back
    as ``str``. The connection pool is shared by all in-flight requests.
    """

    def __init__(self, client: redis.Redis):
        self._client = client

    @property
    def client(self) -> redis.Redis:
        return self._client

    @_wrap_redis_errors("get")
    async def get(self, key: str) -> str:
        value = await self._client.get(key)
        if value is None:
            raise KeyNotFoundError(key)
        return value

    @_wrap_redis_errors("set")
    async def set(self, key: str, value: str, ttl: int, nx: bool = False) -> bool:
        result = await self._client.set(key, value, ex=ttl, nx=nx)
        return bool(result)

    @_wrap_redis_errors("incr")
    async def incr(self, key: str) -> int:
        return int(await self._client.incr(key))

    @_wrap_redis_errors("decr")
    async def decr(self, key: str) -> int:
        return int(await self._client.decr(key))

    @_wrap_redis_errors("ttl")
    async def ttl(self, key: str) -> int:
        return int(await self._client.ttl(key))

    @_wrap_redis_errors("expire")
    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self._client.expire(key, ttl))

    @_wrap_redis_errors("incr_and_expire")
    async def incr_and_expire(self, key: str, ttl: int) -> int:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl)
            count, _ = await pipe.execute()
        return int(count)

    @_wrap_redis_errors("ping")
    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
