"""Short-code selection: caller alias or random nanoid, checked against the store.

Flow Diagram — generate()
=========================
::
    ┌──────────────────┐
    │ generate(alias)  │
    └──────┬───────────┘
    ALIAS?  │
    ┌─────┴──────┐
    │ YES         │ NO
    ▼             ▼
┌──────────┐  ┌──────────────┐
│ reserved?│  │ nanoid(size) │◄──┐
│ -> 403   │  └──────┬───────┘   │
└────┬─────┘         ▼           │
     │        ┌──────────────┐   │ attempts
     │        │ GET candidate│   │ left
     │        └──────┬───────┘   │
     ▼          EXISTS? ─────────┘
┌──────────┐         │ NO
│GET alias │         ▼
│exists?   │     return code
│ -> 403   │
└──────────┘

Key Behaviours
===============
- A non-empty (after strip) alias is used verbatim; it is never overwritten.
- Aliases that would land in the rate-limit namespace, on the visit counter
  key or on a fixed route path are refused as already in use.
- Random codes use nanoid's URL-safe alphabet (``A-Za-z0-9_-``), drawn from
  ``os.urandom``. Six characters carry 36 bits of entropy.
- A random collision is retried only while attempts remain; by default there
  is a single attempt and any collision is a terminal 403, like an alias
  collision. Only an entropy failure yields ``CodeGenerationError``.
- Store failures during the collision check propagate as
  ``StoreUnavailableError``; the shorten handler fails closed on them.
"""

import logging
from collections.abc import Callable

from nanoid import generate

from app.config import Settings
from app.exceptions import AliasInUseError, CodeCollisionError, CodeGenerationError, KeyNotFoundError
from app.store import KeyValueStore

__all__ = ["CodeGenerator", "ROUTE_SEGMENTS", "random_code"]

logger = logging.getLogger("urlshortener")

# Single-segment paths served by fixed routes; GET /<code> can never reach them.
ROUTE_SEGMENTS = ("health", "metrics", "docs", "redoc", "openapi.json")


def random_code(size: int) -> str:
    return generate(size=size)


class CodeGenerator:
    def __init__(
        self,
        store: KeyValueStore,
        length: int = 6,
        attempts: int = 1,
        reserved_prefixes: tuple[str, ...] = ("rl:",),
        reserved_keys: tuple[str, ...] = ("counter", *ROUTE_SEGMENTS),
        random_source: Callable[[int], str] = random_code,
    ):
        self._store = store
        self.length = length
        self.attempts = attempts
        self._reserved_prefixes = reserved_prefixes
        self._reserved_keys = reserved_keys
        self._random_source = random_source

    @classmethod
    def from_settings(cls, store: KeyValueStore, settings: Settings) -> "CodeGenerator":
        return cls(
            store,
            length=settings.SHORT_CODE_LENGTH,
            attempts=settings.CODE_GENERATION_ATTEMPTS,
            reserved_prefixes=(settings.RATE_LIMIT_KEY_PREFIX,),
            reserved_keys=(settings.VISIT_COUNTER_KEY, *ROUTE_SEGMENTS),
        )

    def is_reserved(self, code: str) -> bool:
        return code in self._reserved_keys or code.startswith(self._reserved_prefixes)

    async def generate(self, requested_alias: str | None = None) -> str:
        alias = (requested_alias or "").strip()
        if alias:
            if self.is_reserved(alias) or await self._exists(alias):
                raise AliasInUseError(alias)
            return alias

        for attempt in range(1, self.attempts + 1):
            candidate = self._new_candidate()
            if self.is_reserved(candidate) or await self._exists(candidate):
                logger.warning(f"Random short code collision on '{candidate}' (attempt {attempt}/{self.attempts})")
                continue
            return candidate

        raise CodeCollisionError(candidate)

    def _new_candidate(self) -> str:
        try:
            return self._random_source(self.length)
        except (OSError, NotImplementedError) as exc:
            logger.error(f"Entropy source failed: {exc}")
            raise CodeGenerationError() from exc

    async def _exists(self, code: str) -> bool:
        try:
            await self._store.get(code)
        except KeyNotFoundError:
            return False
        return True
