"""Dependency injection with a singleton service manager.

This module provides a centralized way to inject the key-value store, settings
and logger into the API endpoints, using a singleton pattern for shared
resources to minimize per-request overhead. The store is still handed to every
handler explicitly; only this module knows it is shared.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request

from app.config import Settings, get_settings
from app.redis import create_redis_client
from app.store import KeyValueStore, RedisStore
from app.url_service import ResolveHandler, ShortenHandler


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton service manager for shared resources.

    Owns the settings, the ``urlshortener`` logger and the Redis-backed store,
    whose connection pool is safe to share across concurrent requests.
    """

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if not self._initialized:
            self.settings = get_settings()
            self.logger = self._setup_logger()
            self.store = self._setup_store()
            self._initialized = True
            self.logger.info(f"{self.settings.APP_NAME} initialized ({self.settings.APP_ENV})")

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("urlshortener")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    def _setup_store(self) -> KeyValueStore:
        """Setup the Redis-backed store once."""
        return RedisStore(create_redis_client(self.settings))

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if hasattr(self, "store"):
            await self.store.close()
            del self.store
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


class ContextLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that keeps per-call ``extra`` fields next to the request context."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


@dataclass
class RequestContext:
    """Per-request view over the shared resources.

    Attributes:
        store: Shared key-value store
        settings: Application settings
        base_logger: Shared ``urlshortener`` logger
        request_id: Unique identifier for this request
        client_ip: Client IP address (rate limit bucket identity)
        user_agent: Client user agent string
        base_url: Inbound request base URL, used when DOMAIN is unset
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    store: KeyValueStore
    settings: Settings
    base_logger: logging.Logger
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    base_url: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def logger(self) -> ContextLoggerAdapter:
        """Get shared logger with request context."""
        return ContextLoggerAdapter(
            self.base_logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def add_tag(self, tag: str) -> None:
        """Add a tag to the request context."""
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    """Get the singleton service manager.

    Returns:
        ServiceManager: Initialized singleton service manager
    """
    if not _service_manager._initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_app_settings(manager: ServiceManager = Depends(get_service_manager)) -> Settings:
    return manager.settings


async def get_store(manager: ServiceManager = Depends(get_service_manager)) -> KeyValueStore:
    return manager.store


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
    settings: Settings = Depends(get_app_settings),
    store: KeyValueStore = Depends(get_store),
) -> RequestContext:
    """Build the request context from the inbound request and shared resources.

    Args:
        request: FastAPI Request object for extracting client info
        manager: Singleton service manager with the shared logger
        settings: Application settings
        store: Shared key-value store

    Returns:
        RequestContext: Context for the request
    """
    return RequestContext(
        store=store,
        settings=settings,
        base_logger=manager.logger,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        base_url=str(request.base_url),
    )


def get_shorten_handler(ctx: RequestContext = Depends(get_request_context)) -> ShortenHandler:
    return ShortenHandler.from_context(ctx)


def get_resolve_handler(ctx: RequestContext = Depends(get_request_context)) -> ResolveHandler:
    return ResolveHandler.from_context(ctx)
