"""Pydantic schemas for request/response validation in the URL shortener.

Schema Hierarchy
=================
::
    ShortenRequest (Input, POST /api/v1)
    ├─ url: str
    ├─ short: str | None   (custom alias; attribute ``custom_short``)
    └─ expiry: int | None  (hours)

    ShortenResponse (Output)
    ├─ url: str               (normalized target)
    ├─ short: str             (absolute short URL)
    ├─ code: str
    ├─ expiry: int            (hours)
    ├─ rate_limit: int        (requests remaining in the window)
    └─ rate_limit_reset: int  (minutes until the window resets)

    ErrorResponse (Output)
    └─ error: str

    HealthResponse (Output)
    ├─ status: "ok"
    └─ store: healthy | unhealthy

Key Behaviours
===============
- The request schema only checks shape and types. URL well-formedness is
  checked later in the pipeline, after the rate limiter has counted the
  request, so an invalid URL still consumes quota.
- Any schema failure is reported as ``400 invalid body``.
"""

from pydantic import BaseModel, ConfigDict, Field

from app.enums import HealthStatus, LivenessStatus

__all__ = [
    "ShortenRequest",
    "ShortenResponse",
    "ErrorResponse",
    "HealthResponse",
]


class ShortenRequest(BaseModel):
    url: str
    custom_short: str | None = Field(default=None, alias="short")
    expiry: int | None = Field(default=None, description="Expiry in hours; absent or <= 0 means the default")

    model_config = ConfigDict(populate_by_name=True)


class ShortenResponse(BaseModel):
    url: str
    short: str
    code: str
    expiry: int
    rate_limit: int
    rate_limit_reset: int


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: LivenessStatus = LivenessStatus.OK
    store: HealthStatus
