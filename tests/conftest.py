"""Shared pytest fixtures: an in-memory store double, a controllable clock, and an API client."""

import math
from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.dependencies import get_app_settings, get_store
from app.exceptions import KeyNotFoundError, StoreUnavailableError
from app.main import app
from app.store import KeyValueStore

DEFAULT_CLIENT_IP = "203.0.113.7"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryStore(KeyValueStore):
    """Redis-like ``KeyValueStore`` kept in a dict, with expiry driven by a ``FakeClock``.

    ``fail(*operations)`` makes the named operations raise ``StoreUnavailableError``.
    """

    def __init__(self, clock: FakeClock):
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self._failing: set[str] = set()

    def fail(self, *operations: str) -> None:
        self._failing.update(operations)

    def recover(self) -> None:
        self._failing.clear()

    def _check(self, operation: str) -> None:
        if operation in self._failing:
            raise StoreUnavailableError(operation, ConnectionError("store is down"))

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    def _add(self, key: str, delta: int) -> int:
        entry = self._live(key)
        value, expires_at = entry if entry is not None else ("0", None)
        new_value = int(value) + delta
        self._data[key] = (str(new_value), expires_at)
        return new_value

    async def get(self, key: str) -> str:
        self._check("get")
        entry = self._live(key)
        if entry is None:
            raise KeyNotFoundError(key)
        return entry[0]

    async def set(self, key: str, value: str, ttl: int, nx: bool = False) -> bool:
        self._check("set")
        if nx and self._live(key) is not None:
            return False
        self._data[key] = (value, self._clock() + ttl)
        return True

    async def incr(self, key: str) -> int:
        self._check("incr")
        return self._add(key, 1)

    async def decr(self, key: str) -> int:
        self._check("decr")
        return self._add(key, -1)

    async def ttl(self, key: str) -> int:
        self._check("ttl")
        entry = self._live(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return math.ceil(entry[1] - self._clock())

    async def expire(self, key: str, ttl: int) -> bool:
        self._check("expire")
        entry = self._live(key)
        if entry is None:
            return False
        self._data[key] = (entry[0], self._clock() + ttl)
        return True

    async def incr_and_expire(self, key: str, ttl: int) -> int:
        self._check("incr_and_expire")
        count = self._add(key, 1)
        self._data[key] = (str(count), self._clock() + ttl)
        return count

    async def ping(self) -> bool:
        self._check("ping")
        return True


def make_settings(**overrides) -> Settings:
    values = {"DOMAIN": "", "API_QUOTA": 10, "DENIED_DOMAINS": "", "RATE_LIMIT_REFUND": True}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryStore:
    return MemoryStore(clock)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest_asyncio.fixture
async def make_client(
    store: MemoryStore, settings: Settings
) -> AsyncGenerator[Callable[..., AsyncClient], None]:
    clients: list[AsyncClient] = []

    def factory(ip: str = DEFAULT_CLIENT_IP) -> AsyncClient:
        transport = ASGITransport(app=app, client=(ip, 4000))
        ac = AsyncClient(transport=transport, base_url="http://test")
        clients.append(ac)
        return ac

    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: store

    yield factory

    for ac in clients:
        await ac.aclose()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(make_client: Callable[..., AsyncClient]) -> AsyncClient:
    return make_client()
