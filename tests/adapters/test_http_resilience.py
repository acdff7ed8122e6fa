from __future__ import annotations

import asyncio

import httpx
import pytest

from aedmatch.adapters.http_resilience import ResilientClient, build_retry
from aedmatch.config.http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy


def test_build_retry_copies_policy() -> None:
    retry = build_retry(RetryPolicy(total=4, allowed_methods=frozenset({"GET"})))

    assert retry.total == 4
    assert "GET" in retry.allowed_methods
    assert "POST" not in retry.allowed_methods


def test_unknown_cache_backend_is_rejected() -> None:
    config = ResilienceConfig(
        name="bad-cache",
        cache=CacheConfig(enabled=True, backend="redis"),  # type: ignore[arg-type]
    )

    with pytest.raises(ValueError, match="redis"):
        ResilientClient(config)


def test_rate_limited_client_sends_requests() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    config = ResilienceConfig(
        name="limited",
        base_url="https://example.test",
        ratelimit=RateLimit(max_calls=5, per_seconds=1.0),
        cache=None,
    )

    async def run() -> list[int]:
        async with ResilientClient(config) as client:
            client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
                base_url="https://example.test",
                transport=httpx.MockTransport(handler),
            )
            responses = [await client.get("/ping"), await client.post("/ping", json={})]
            return [response.status_code for response in responses]

    assert asyncio.run(run()) == [200, 200]
    assert [request.method for request in seen] == ["GET", "POST"]
    assert seen[0].url == httpx.URL("https://example.test/ping")
