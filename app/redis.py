"""Redis client management for the URL shortener.

This module builds the Redis client from the ``DB_ADDR`` / ``DB_PASS``
settings. The service manager in ``app.dependencies`` owns the single
instance shared by all requests.

How to Use
===========
**Step 1 — Build a client**::
    client = create_redis_client(get_settings())

**Step 2 — Cleanup on shutdown**::
    await client.aclose()

Key Behaviours
===============
- ``redis://`` and ``rediss://`` addresses are parsed with ``from_url`` and
  carry their own credentials.
- Any other address is treated as ``host:port`` (``[v6addr]:port`` for IPv6)
  and authenticated with ``DB_PASS`` when it is set.
- UTF-8 encoding with decode_responses for string operations.

Functions:
    create_redis_client():  Build a new client from settings.
"""

import redis.asyncio as redis

from app.config import Settings

__all__ = ["create_redis_client"]

DEFAULT_REDIS_PORT = 6379


def create_redis_client(settings: Settings) -> redis.Redis:
    addr = settings.DB_ADDR.strip()
    timeout = settings.REDIS_SOCKET_TIMEOUT_SECONDS
    if addr.startswith(("redis://", "rediss://")):
        return redis.from_url(
            addr,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    if addr.startswith("["):
        host, _, port = addr[1:].partition("]")
        port = port.lstrip(":")
    else:
        host, _, port = addr.rpartition(":")
        if not host:
            host, port = addr, ""
    return redis.Redis(
        host=host or "localhost",
        port=int(port) if port else DEFAULT_REDIS_PORT,
        password=settings.DB_PASS or None,
        db=0,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
