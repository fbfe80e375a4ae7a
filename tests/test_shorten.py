"""Shorten endpoint behavior tests."""

import string

import pytest
from httpx import AsyncClient

from app.code_generator import ROUTE_SEGMENTS
from app.main import app
from conftest import MemoryStore, make_settings

URL_SAFE = set(string.ascii_letters + string.digits + "-_")


@pytest.mark.asyncio
async def test_shorten_valid_url(client: AsyncClient, store: MemoryStore) -> None:
    response = await client.post("/api/v1", json={"url": "https://www.python.org/downloads"})
    assert response.status_code == 200
    data = response.json()
    assert data["url"] == "https://www.python.org/downloads"
    assert len(data["code"]) >= 6
    assert set(data["code"]) <= URL_SAFE
    assert data["short"] == f"http://test/{data['code']}"
    assert data["expiry"] == 24
    assert await store.get(data["code"]) == "https://www.python.org/downloads"


@pytest.mark.asyncio
async def test_shorten_uses_configured_domain(make_client, settings) -> None:
    settings.DOMAIN = "sho.rt"
    client = make_client()
    response = await client.post("/api/v1", json={"url": "https://example.com", "short": "dom"})
    assert response.status_code == 200
    assert response.json()["short"] == "https://sho.rt/dom"


@pytest.mark.asyncio
async def test_shorten_adds_https_to_schemeless_url(client: AsyncClient, store: MemoryStore) -> None:
    response = await client.post("/api/v1", json={"url": "example.com/some/page"})
    assert response.status_code == 200
    data = response.json()
    assert data["url"] == "https://example.com/some/page"
    assert await store.get(data["code"]) == "https://example.com/some/page"


@pytest.mark.asyncio
async def test_shorten_keeps_http_scheme(client: AsyncClient) -> None:
    response = await client.post("/api/v1", json={"url": "http://example.com"})
    assert response.status_code == 200
    assert response.json()["url"] == "http://example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["not a url", "", "https://", "http://exa mple.com"])
async def test_shorten_invalid_url(client: AsyncClient, url: str) -> None:
    response = await client.post("/api/v1", json={"url": url})
    assert response.status_code == 400
    assert response.json() == {"error": "invalid url"}


@pytest.mark.asyncio
async def test_shorten_malformed_json(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "invalid body"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {},
        {"short": "abc"},
        {"url": "https://example.com", "expiry": "tomorrow"},
        {"url": 42},
    ],
)
async def test_shorten_invalid_body(client: AsyncClient, store: MemoryStore, body: dict) -> None:
    response = await client.post("/api/v1", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "invalid body"}
    # body parsing happens before the rate limiter counts the request
    assert await store.ttl("rl:203.0.113.7") == -2


@pytest.mark.asyncio
async def test_shorten_denied_domain(make_client, settings) -> None:
    settings.DENIED_DOMAINS = "evil.example, blocked.test"
    client = make_client()
    response = await client.post("/api/v1", json={"url": "https://sub.evil.example/x"})
    assert response.status_code == 503
    assert response.json() == {"error": "access denied"}


@pytest.mark.asyncio
async def test_shorten_own_domain_is_denied(make_client, settings) -> None:
    settings.DOMAIN = "sho.rt"
    client = make_client()
    response = await client.post("/api/v1", json={"url": "https://www.sho.rt/abc"})
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_shorten_with_custom_alias(client: AsyncClient, store: MemoryStore) -> None:
    response = await client.post("/api/v1", json={"url": "https://www.github.com", "short": "  ghub "})
    assert response.status_code == 200
    assert response.json()["code"] == "ghub"
    assert await store.get("ghub") == "https://www.github.com"


@pytest.mark.asyncio
async def test_shorten_blank_alias_generates_code(client: AsyncClient) -> None:
    response = await client.post("/api/v1", json={"url": "https://www.github.com", "short": "   "})
    assert response.status_code == 200
    assert len(response.json()["code"]) == 6


@pytest.mark.asyncio
async def test_shorten_duplicate_alias(client: AsyncClient, store: MemoryStore) -> None:
    first = await client.post("/api/v1", json={"url": "https://www.github.com", "short": "abc"})
    second = await client.post("/api/v1", json={"url": "https://www.example.com", "short": "abc"})
    assert first.status_code == 200
    assert second.status_code == 403
    assert second.json() == {"error": "alias already in use"}
    assert await store.get("abc") == "https://www.github.com"


@pytest.mark.asyncio
@pytest.mark.parametrize("alias", ["counter", "rl:198.51.100.1"])
async def test_shorten_reserved_alias(client: AsyncClient, alias: str) -> None:
    response = await client.post("/api/v1", json={"url": "https://example.com", "short": alias})
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("alias", ["health", "docs", "metrics", "redoc", "openapi.json"])
async def test_shorten_refuses_alias_shadowed_by_route(client: AsyncClient, store: MemoryStore, alias: str) -> None:
    response = await client.post("/api/v1", json={"url": "https://example.com", "short": alias})
    assert response.status_code == 403
    assert response.json() == {"error": "alias already in use"}
    assert await store.ttl(alias) == -2


def test_route_segments_cover_fixed_routes() -> None:
    fixed = {
        path.strip("/")
        for path in (getattr(route, "path", "") for route in app.routes)
        if path.count("/") == 1 and "{" not in path and path != "/"
    }
    assert "health" in fixed
    assert fixed <= set(ROUTE_SEGMENTS)


@pytest.mark.asyncio
async def test_shorten_random_collision_is_conflict(client: AsyncClient, store: MemoryStore, monkeypatch) -> None:
    await store.set("aaaaaa", "https://taken.example", ttl=60)
    monkeypatch.setattr("app.code_generator.generate", lambda size: "aaaaaa")
    response = await client.post("/api/v1", json={"url": "https://example.com"})
    assert response.status_code == 403
    assert response.json() == {"error": "alias already in use"}
    assert await store.get("aaaaaa") == "https://taken.example"


@pytest.mark.asyncio
@pytest.mark.parametrize(("expiry", "hours"), [(None, 24), (0, 24), (-3, 24), (2, 2), (72, 72)])
async def test_shorten_expiry(client: AsyncClient, store: MemoryStore, expiry, hours: int) -> None:
    body = {"url": "https://example.com", "short": "exp"}
    if expiry is not None:
        body["expiry"] = expiry
    response = await client.post("/api/v1", json=body)
    assert response.status_code == 200
    assert response.json()["expiry"] == hours
    assert await store.ttl("exp") == hours * 3600


@pytest.mark.asyncio
async def test_shorten_reports_rate_limit(client: AsyncClient) -> None:
    response = await client.post("/api/v1", json={"url": "https://example.com"})
    assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert response.headers["X-RateLimit-Remaining"] == "9"
    assert response.headers["X-RateLimit-Reset"] == "1800"
    data = response.json()
    # refunded after the successful write
    assert data["rate_limit"] == 10
    assert data["rate_limit_reset"] == 30


@pytest.mark.asyncio
async def test_shorten_error_carries_rate_headers(client: AsyncClient) -> None:
    response = await client.post("/api/v1", json={"url": "not a url"})
    assert response.status_code == 400
    assert response.headers["X-RateLimit-Remaining"] == "9"


@pytest.mark.asyncio
async def test_shorten_fails_open_when_rate_limiter_store_is_down(client: AsyncClient, store: MemoryStore) -> None:
    store.fail("incr_and_expire")
    response = await client.post("/api/v1", json={"url": "https://example.com"})
    assert response.status_code == 200
    assert "X-RateLimit-Limit" not in response.headers


@pytest.mark.asyncio
async def test_shorten_zero_rate_values_when_reread_fails(client: AsyncClient, store: MemoryStore) -> None:
    store.fail("ttl")
    response = await client.post("/api/v1", json={"url": "https://example.com", "short": "zz"})
    assert response.status_code == 200
    data = response.json()
    assert data["rate_limit"] == 0
    assert data["rate_limit_reset"] == 0
    assert response.headers["X-RateLimit-Reset"] == "0"


@pytest.mark.asyncio
async def test_shorten_persist_failure(client: AsyncClient, store: MemoryStore) -> None:
    store.fail("set")
    response = await client.post("/api/v1", json={"url": "https://example.com"})
    assert response.status_code == 500
    assert response.json() == {"error": "unable to persist"}


@pytest.mark.asyncio
async def test_shorten_collision_check_failure_fails_closed(client: AsyncClient, store: MemoryStore) -> None:
    store.fail("get")
    response = await client.post("/api/v1", json={"url": "https://example.com", "short": "down"})
    assert response.status_code == 500
    assert response.json() == {"error": "cannot connect to db"}


@pytest.mark.asyncio
async def test_shorten_refund_failure_is_swallowed(client: AsyncClient, store: MemoryStore) -> None:
    store.fail("decr")
    response = await client.post("/api/v1", json={"url": "https://example.com", "short": "nodecr"})
    assert response.status_code == 200
    assert await store.get("nodecr") == "https://example.com"


@pytest.mark.asyncio
async def test_shorten_multiple_urls_get_unique_codes(client: AsyncClient) -> None:
    codes = set()
    for url in ["https://www.google.com", "https://www.github.com", "https://www.python.org"]:
        response = await client.post("/api/v1", json={"url": url})
        assert response.status_code == 200
        codes.add(response.json()["code"])
    assert len(codes) == 3


def test_make_settings_isolated_from_env(monkeypatch) -> None:
    monkeypatch.setenv("DOMAIN", "from-env.example")
    assert make_settings().DOMAIN == ""
