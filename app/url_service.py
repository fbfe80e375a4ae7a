"""URL Shortener Service Layer - Shorten and Resolve pipelines

This module holds the two request handlers of the service. Both are built per
request from a ``RequestContext`` and receive every collaborator (store, rate
limiter, code generator, settings, logger) explicitly, so nothing here reaches
for a global client.

Architecture Overview
==================
::
    ┌──────────────────────────────────────────────────────────┐
    │                      Service Layer                       │
    │  ┌─────────────────┐  ┌──────────────┐  ┌─────────────┐  │
    │  │ ShortenHandler  │  │ RateLimiter  │  │CodeGenerator│  │
    │  │ ResolveHandler  │  │ (rl:<ip>)    │  │ (nanoid)    │  │
    │  └─────────────────┘  └──────────────┘  └─────────────┘  │
    └──────────────────────────────────────────────────────────┘
                │                    │                 │
                ▼                    ▼                 ▼
    ┌──────────────────────────────────────────────────────────┐
    │          KeyValueStore (Redis via redis.asyncio)         │
    │  <code> -> url (EX)    rl:<ip> -> n (EX)    counter -> n  │
    └──────────────────────────────────────────────────────────┘

URL Creation Flow
-----------------
::
    ┌─────────────┐
    │ POST /api/v1│  body already parsed (400 invalid body otherwise)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Rate limit  │──over quota──► 429 rate limit exceeded
    │ (fail open) │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate URL│──────────────► 400 invalid url
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Domain      │──────────────► 503 access denied
    │ policy      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ https://    │
    │ + expiry    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Generate    │──collision───► 403 alias already in use
    │ code        │──entropy─────► 500 could not generate id
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ SET NX EX   │──store down──► 500 unable to persist
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Refund +    │  best effort
    │ re-read rl  │
    └──────┬──────┘
           ▼
          200

URL Lookup & Redirect Flow
---------------------------
::
    GET /:code ──► GET code ──missing──► 404 short not found
                       │ ──store down──► 500 cannot connect to db
                       ▼
                  INCR counter (best effort)
                       ▼
                  301 Redirect

Usage Examples
=============
```python
@router.post("/api/v1")
async def shorten_url(
    payload: ShortenRequest,
    handler: ShortenHandler = Depends(get_shorten_handler),
) -> ShortenResponse:
    outcome = await handler.handle(payload)
    return outcome.response
```
"""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prometheus_client import Counter, Histogram

from app.code_generator import CodeGenerator
from app.config import Settings
from app.enums import RequestStatus
from app.exceptions import (
    AliasInUseError,
    CodeCollisionError,
    DomainDeniedError,
    InvalidURLError,
    KeyNotFoundError,
    PersistError,
    QuotaExceededError,
    ShortCodeNotFoundError,
    ShortenerError,
    StoreUnavailableError,
)
from app.rate_limiter import RateLimiter, RateLimitStatus
from app.schemas import ShortenRequest, ShortenResponse
from app.store import KeyValueStore
from app.url_policy import build_short_url, enforce_scheme, is_allowed, is_valid_url

if TYPE_CHECKING:
    from app.dependencies import RequestContext

__all__ = ["ResolveHandler", "ShortenHandler", "ShortenOutcome"]

SECONDS_PER_HOUR = 3600


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

SHORTEN_REQUESTS_TOTAL = Counter(
    "url_shortener_shorten_requests_total",
    "Total URL shorten requests",
    ["status"],
)
SHORTEN_DURATION = Histogram(
    "url_shortener_shorten_duration_seconds",
    "Time taken to shorten URLs",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
RESOLVE_REQUESTS_TOTAL = Counter(
    "url_shortener_resolve_requests_total",
    "Total short code resolve requests",
    ["status"],
)


# ============================================================================
# SHORTEN
# ============================================================================


@dataclass
class ShortenOutcome:
    response: ShortenResponse
    headers: dict[str, str] = field(default_factory=dict)


class ShortenHandler:
    """Runs the shorten state machine for a single request.

    The steps are strictly linear. Every error raised after the rate limit
    check carries the rate headers computed by that check, provided the store
    answered it.
    """

    def __init__(
        self,
        store: KeyValueStore,
        rate_limiter: RateLimiter,
        code_generator: CodeGenerator,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter,
        client_ip: str,
        request_base_url: str = "",
    ):
        self._store = store
        self._rate_limiter = rate_limiter
        self._code_generator = code_generator
        self._settings = settings
        self._logger = logger
        self._client_ip = client_ip
        self._request_base_url = request_base_url

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "ShortenHandler":
        return cls(
            store=ctx.store,
            rate_limiter=RateLimiter.from_settings(ctx.store, ctx.settings),
            code_generator=CodeGenerator.from_settings(ctx.store, ctx.settings),
            settings=ctx.settings,
            logger=ctx.logger,
            client_ip=ctx.client_ip or "unknown",
            request_base_url=ctx.base_url or "",
        )

    async def handle(self, request: ShortenRequest) -> ShortenOutcome:
        start_time = time.perf_counter()
        rate_status = await self._rate_limiter.check(self._client_ip)
        headers = rate_status.headers() if rate_status is not None else {}

        try:
            response = await self._shorten(request, rate_status)
        except ShortenerError as exc:
            exc.headers.update(headers)
            SHORTEN_REQUESTS_TOTAL.labels(status=RequestStatus.from_status_code(exc.status_code)).inc()
            SHORTEN_DURATION.observe(time.perf_counter() - start_time)
            self._logger.warning(f"Shorten rejected for {self._client_ip}: {exc.status_code} {exc.message}")
            raise

        SHORTEN_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        SHORTEN_DURATION.observe(time.perf_counter() - start_time)
        return ShortenOutcome(response=response, headers=headers)

    async def _shorten(self, request: ShortenRequest, rate_status: RateLimitStatus | None) -> ShortenResponse:
        if rate_status is not None and not rate_status.allowed:
            raise QuotaExceededError(rate_status.reset_seconds)

        target = request.url.strip()
        if not is_valid_url(target):
            raise InvalidURLError(target)
        if not is_allowed(target, self._settings.DOMAIN, self._settings.denied_domains):
            raise DomainDeniedError(target)
        target = enforce_scheme(target)

        expiry_hours = request.expiry
        if expiry_hours is None or expiry_hours <= 0:
            expiry_hours = self._settings.DEFAULT_EXPIRY_HOURS

        code = await self._code_generator.generate(request.custom_short)
        await self._persist(code, target, expiry_hours, is_alias=bool((request.custom_short or "").strip()))
        self._logger.info(f"Short URL created: {code} -> {target} (expires in {expiry_hours}h)")

        if rate_status is not None and self._settings.RATE_LIMIT_REFUND:
            await self._rate_limiter.refund(self._client_ip)
        remaining, reset_seconds = await self._rate_limiter.snapshot(self._client_ip)

        return ShortenResponse(
            url=target,
            short=build_short_url(code, self._settings.DOMAIN, self._request_base_url),
            code=code,
            expiry=expiry_hours,
            rate_limit=remaining,
            rate_limit_reset=reset_seconds // 60,
        )

    async def _persist(self, code: str, target: str, expiry_hours: int, is_alias: bool) -> None:
        try:
            created = await self._store.set(code, target, ttl=expiry_hours * SECONDS_PER_HOUR, nx=True)
        except StoreUnavailableError as exc:
            self._logger.error(f"Persisting {code} failed: {exc}")
            raise PersistError() from exc

        if not created:
            # Another request claimed the code between the collision check and SET NX.
            self._logger.warning(f"Short code {code} was claimed concurrently")
            if is_alias:
                raise AliasInUseError(code)
            raise CodeCollisionError(code)


# ============================================================================
# RESOLVE
# ============================================================================


class ResolveHandler:
    """Looks up a short code and counts the visit."""

    def __init__(
        self,
        store: KeyValueStore,
        logger: logging.Logger | logging.LoggerAdapter,
        counter_key: str = "counter",
    ):
        self._store = store
        self._logger = logger
        self._counter_key = counter_key

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "ResolveHandler":
        return cls(store=ctx.store, logger=ctx.logger, counter_key=ctx.settings.VISIT_COUNTER_KEY)

    async def handle(self, short_code: str) -> str:
        try:
            target = await self._store.get(short_code)
        except KeyNotFoundError:
            RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND).inc()
            raise ShortCodeNotFoundError(short_code) from None
        except StoreUnavailableError as exc:
            RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Resolve of {short_code} failed: {exc}")
            raise

        try:
            await self._store.incr(self._counter_key)
        except StoreUnavailableError as exc:
            self._logger.warning(f"Visit counter increment failed: {exc}")

        RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.debug(f"Resolved {short_code} -> {target}")
        return target
