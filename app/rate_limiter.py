"""Per-client rate limiting over the key-value store's counter + TTL primitives.

Flow Diagram — check()
======================
::
    ┌─────────────┐
    │ check(ip)   │
    └──────┬──────┘
           ▼
    ┌──────────────────┐
    │ MULTI            │
    │  INCR rl:<ip>    │
    │  EXPIRE rl:<ip>  │
    │ EXEC             │
    └──────┬───────────┘
    STORE OK?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────────┐
│ fail    │  │ TTL rl:<ip> │
│ OPEN    │  │ (reset)     │
│ (None)  │  └──────┬──────┘
└─────────┘         ▼
             ┌─────────────┐
             │ allowed =   │
             │ count<=limit│
             └─────────────┘

Key Behaviours
===============
- Every check refreshes the window to its full length.
- ``remaining = limit - count`` and goes negative once the caller is over
  quota; it tells the caller by how much.
- If the store cannot be reached the limiter fails OPEN: ``check`` returns
  ``None`` and the request proceeds without rate headers.
- ``refund`` and ``snapshot`` are best-effort and never raise.
"""

import logging
from dataclasses import dataclass

from prometheus_client import Counter

from app.config import Settings
from app.enums import RateLimitDecision
from app.exceptions import KeyNotFoundError, StoreUnavailableError
from app.store import KeyValueStore

__all__ = ["RateLimitStatus", "RateLimiter"]

logger = logging.getLogger("urlshortener")

RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "url_shortener_rate_limit_decisions_total",
    "Rate limiter outcomes",
    ["decision"],
)


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    count: int
    limit: int
    reset_seconds: int

    @property
    def remaining(self) -> int:
        return self.limit - self.count

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_seconds),
        }


class RateLimiter:
    """Fixed-quota limiter keyed by client identifier (the caller's IP)."""

    def __init__(
        self,
        store: KeyValueStore,
        limit: int,
        window_seconds: int,
        key_prefix: str = "rl:",
    ):
        self._store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self._key_prefix = key_prefix

    @classmethod
    def from_settings(cls, store: KeyValueStore, settings: Settings) -> "RateLimiter":
        return cls(
            store,
            limit=settings.API_QUOTA,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            key_prefix=settings.RATE_LIMIT_KEY_PREFIX,
        )

    def bucket_key(self, client_id: str) -> str:
        return f"{self._key_prefix}{client_id}"

    async def check(self, client_id: str) -> RateLimitStatus | None:
        key = self.bucket_key(client_id)
        try:
            count = await self._store.incr_and_expire(key, self.window_seconds)
        except StoreUnavailableError as exc:
            RATE_LIMIT_DECISIONS_TOTAL.labels(decision=RateLimitDecision.FAIL_OPEN).inc()
            logger.warning(f"Rate limiter unavailable, allowing {client_id}: {exc}")
            return None

        reset_seconds = await self._reset_seconds(key)
        status = RateLimitStatus(
            allowed=count <= self.limit,
            count=count,
            limit=self.limit,
            reset_seconds=reset_seconds,
        )
        decision = RateLimitDecision.ALLOWED if status.allowed else RateLimitDecision.LIMITED
        RATE_LIMIT_DECISIONS_TOTAL.labels(decision=decision).inc()
        logger.debug(f"Rate limit {decision} for {client_id}: {count}/{self.limit}, reset in {reset_seconds}s")
        return status

    async def refund(self, client_id: str) -> None:
        try:
            await self._store.decr(self.bucket_key(client_id))
        except StoreUnavailableError as exc:
            logger.warning(f"Rate limit refund failed for {client_id}: {exc}")

    async def snapshot(self, client_id: str) -> tuple[int, int]:
        """Re-read the bucket as ``(remaining, reset_seconds)``.

        A missing bucket counts as zero requests. Any store failure yields
        ``(0, 0)`` instead of an error.
        """
        key = self.bucket_key(client_id)
        try:
            try:
                count = int(await self._store.get(key))
            except KeyNotFoundError:
                count = 0
            reset_seconds = max(await self._store.ttl(key), 0)
        except (StoreUnavailableError, ValueError) as exc:
            logger.warning(f"Rate limit snapshot failed for {client_id}: {exc}")
            return 0, 0
        return self.limit - count, reset_seconds

    async def _reset_seconds(self, key: str) -> int:
        try:
            ttl = await self._store.ttl(key)
        except StoreUnavailableError as exc:
            logger.warning(f"Rate limit TTL read failed for {key}: {exc}")
            return 0
        return max(ttl, 0)
