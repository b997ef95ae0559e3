import asyncio

import pytest
from starlette.requests import Request

from chatdesk.core.rate_limit import InMemoryRateLimiter, RateLimitRule, client_key


def _request(headers: list[tuple[bytes, bytes]], client: tuple[str, int] | None) -> Request:
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": client})


@pytest.mark.asyncio
async def test_rate_limiter_blocks_after_limit() -> None:
    limiter = InMemoryRateLimiter()
    rule = RateLimitRule(limit=2, window_seconds=60)

    assert await limiter.allow("api:10.0.0.1", rule)
    assert await limiter.allow("api:10.0.0.1", rule)
    assert not await limiter.allow("api:10.0.0.1", rule)
    assert await limiter.allow("api:10.0.0.2", rule)


@pytest.mark.asyncio
async def test_rate_limiter_resets_after_window() -> None:
    limiter = InMemoryRateLimiter()
    rule = RateLimitRule(limit=1, window_seconds=1)

    assert await limiter.allow("auth-login:10.0.0.3", rule)
    assert not await limiter.allow("auth-login:10.0.0.3", rule)

    await asyncio.sleep(1.05)
    assert await limiter.allow("auth-login:10.0.0.3", rule)


@pytest.mark.asyncio
async def test_idle_keys_are_pruned() -> None:
    limiter = InMemoryRateLimiter(prune_every=3)
    rule = RateLimitRule(limit=5, window_seconds=1)

    assert await limiter.allow("a", rule)
    assert await limiter.allow("b", rule)
    await asyncio.sleep(1.05)
    assert await limiter.allow("c", rule)

    assert len(limiter) == 1


def test_client_key_prefers_first_forwarded_address() -> None:
    request = _request([(b"x-forwarded-for", b"203.0.113.7, 10.0.0.1")], ("10.0.0.9", 5000))
    assert client_key(request, "api") == "api:203.0.113.7"


def test_client_key_falls_back_to_peer_address() -> None:
    assert client_key(_request([], ("10.0.0.9", 5000)), "api") == "api:10.0.0.9"
    assert client_key(_request([], None), "api") == "api:unknown"
