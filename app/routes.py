"""FastAPI route definitions for the URL shortener REST API.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200, always)

    POST /api/v1
        ├─ ShortenRequest (request body)
        └─ ShortenResponse (200) or {"error"} 400/403/429/500/503

    GET  /:code
        └─ 301 Redirect or {"error"} 404/500

Key Behaviours
===============
- Errors are raised as ``ShortenerError`` subclasses and rendered by the
  exception handlers registered in ``app.main``.
- Rate limit headers are attached to shorten responses whenever the store
  answered the rate limit check.
- ``/:code`` is registered last so it never shadows the fixed paths.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import RedirectResponse

from app.dependencies import (
    RequestContext,
    get_request_context,
    get_resolve_handler,
    get_shorten_handler,
)
from app.enums import HealthStatus
from app.exceptions import StoreUnavailableError
from app.schemas import ErrorResponse, HealthResponse, ShortenRequest, ShortenResponse
from app.url_service import ResolveHandler, ShortenHandler

__all__ = ["router"]

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    store_status = HealthStatus.HEALTHY
    try:
        await ctx.store.ping()
    except StoreUnavailableError as e:
        ctx.logger.error(f"Store health check failed: {e}")
        store_status = HealthStatus.UNHEALTHY
    return HealthResponse(store=store_status)


@router.post("/api/v1", response_model=ShortenResponse, responses=ERROR_RESPONSES, tags=["urls"])
async def shorten_url(
    payload: ShortenRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    handler: ShortenHandler = Depends(get_shorten_handler),
) -> ShortenResponse:
    ctx.add_tag("url_creation")
    ctx.logger.info(
        f"URL shortening requested: {payload.url}",
        extra={"operation": "shorten", "target_url": payload.url, "custom_short": payload.custom_short},
    )

    outcome = await handler.handle(payload)
    response.headers.update(outcome.headers)

    ctx.logger.info(
        f"URL shortened successfully: {outcome.response.code}",
        extra={"operation": "shorten", "short_code": outcome.response.code, "duration_ms": ctx.get_duration()},
    )
    return outcome.response


@router.get(
    "/{short_code}",
    status_code=301,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["redirect"],
)
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    handler: ResolveHandler = Depends(get_resolve_handler),
) -> RedirectResponse:
    ctx.add_tag("redirect")
    target = await handler.handle(short_code)
    ctx.logger.info(
        f"Redirect successful: {short_code} -> {target}",
        extra={"operation": "redirect", "short_code": short_code, "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=target, status_code=301)
