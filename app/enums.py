"""Shared enums for the URL shortener application.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "LivenessStatus", "RequestStatus", "RateLimitDecision"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class LivenessStatus(StrEnum):
    """Liveness probe value; the process answers, whatever the store does."""

    OK = "ok"


class RequestStatus(StrEnum):
    """Request outcome values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    RATE_LIMITED = "rate_limited"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    ERROR = "error"

    @classmethod
    def from_status_code(cls, status_code: int) -> "RequestStatus":
        if status_code < 400:
            return cls.SUCCESS
        if status_code == 404:
            return cls.NOT_FOUND
        if status_code == 429:
            return cls.RATE_LIMITED
        if status_code in (403, 409):
            return cls.CONFLICT
        if status_code < 500 or status_code == 503:
            return cls.VALIDATION_ERROR
        return cls.ERROR


class RateLimitDecision(StrEnum):
    """Rate limiter outcome values for metrics."""

    ALLOWED = "allowed"
    LIMITED = "limited"
    FAIL_OPEN = "fail_open"
