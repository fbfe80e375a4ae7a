"""Exception hierarchy for the URL shortener.

Every error the shorten and resolve pipelines can surface maps to exactly one
HTTP status and a short, client-facing message. The FastAPI exception handler
in ``app.main`` renders any ``ShortenerError`` as ``{"error": message}``.

Error Taxonomy
==============
::
    ShortenerError
    ├─ ClientInputError ............ never retried
    │  ├─ InvalidBodyError ......... 400 invalid body
    │  ├─ InvalidURLError .......... 400 invalid url
    │  └─ DomainDeniedError ........ 503 access denied
    ├─ QuotaExceededError .......... 429 rate limit exceeded
    ├─ ConflictError
    │  └─ CodeCollisionError ....... 403 alias already in use
    │     └─ AliasInUseError ....... 403 alias already in use
    ├─ CodeGenerationError ......... 500 could not generate id
    ├─ ShortCodeNotFoundError ...... 404 short not found
    └─ DependencyError
       ├─ PersistError ............. 500 unable to persist
       └─ StoreUnavailableError .... 500 cannot connect to db

    KeyNotFoundError ............... store-level "no such key", not an HTTP error
"""

__all__ = [
    "ShortenerError",
    "ClientInputError",
    "InvalidBodyError",
    "InvalidURLError",
    "DomainDeniedError",
    "QuotaExceededError",
    "ConflictError",
    "CodeCollisionError",
    "AliasInUseError",
    "CodeGenerationError",
    "ShortCodeNotFoundError",
    "DependencyError",
    "PersistError",
    "StoreUnavailableError",
    "KeyNotFoundError",
]


class ShortenerError(Exception):
    """Base exception for the URL shortener service."""

    status_code: int = 500
    message: str = "internal error"

    def __init__(self, message: str | None = None, headers: dict[str, str] | None = None):
        self.message = message or self.message
        self.headers: dict[str, str] = dict(headers or {})
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"error": self.message}


class ClientInputError(ShortenerError):
    status_code = 400
    message = "invalid input"


class InvalidBodyError(ClientInputError):
    message = "invalid body"


class InvalidURLError(ClientInputError):
    message = "invalid url"

    def __init__(self, url: str, headers: dict[str, str] | None = None):
        self.url = url
        super().__init__(headers=headers)


class DomainDeniedError(ClientInputError):
    """Raised when the domain policy refuses the target URL.

    Modeled as "service unavailable for this target", hence 503 rather than 4xx.
    """

    status_code = 503
    message = "access denied"

    def __init__(self, url: str, headers: dict[str, str] | None = None):
        self.url = url
        super().__init__(headers=headers)


class QuotaExceededError(ShortenerError):
    status_code = 429
    message = "rate limit exceeded"

    def __init__(self, reset_seconds: int, headers: dict[str, str] | None = None):
        self.reset_seconds = reset_seconds
        super().__init__(headers=headers)

    def to_payload(self) -> dict:
        return {"error": self.message, "rate_limit_reset": self.reset_seconds // 60}


class ConflictError(ShortenerError):
    status_code = 403
    message = "conflict"


class CodeCollisionError(ConflictError):
    """Raised when a candidate short code already maps to a URL."""

    message = "alias already in use"

    def __init__(self, code: str, headers: dict[str, str] | None = None):
        self.code = code
        super().__init__(headers=headers)


class AliasInUseError(CodeCollisionError):
    def __init__(self, alias: str, headers: dict[str, str] | None = None):
        self.alias = alias
        super().__init__(alias, headers=headers)


class CodeGenerationError(ShortenerError):
    message = "could not generate id"


class ShortCodeNotFoundError(ShortenerError):
    status_code = 404
    message = "short not found"

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__()


class DependencyError(ShortenerError):
    message = "dependency failure"


class PersistError(DependencyError):
    message = "unable to persist"


class StoreUnavailableError(DependencyError):
    """Raised by the store adapter when the key-value store errors or is unreachable."""

    message = "cannot connect to db"

    def __init__(self, operation: str, original_error: Exception | None = None):
        self.operation = operation
        self.original_error = original_error
        super().__init__()

    def __str__(self) -> str:
        return f"store {self.operation} failed: {self.original_error!r}"


class KeyNotFoundError(Exception):
    """Raised by the store adapter when a GET finds no value for the key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"key '{key}' not found")
