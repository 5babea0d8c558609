"""Tests for the sliding-window rate limiter and its middleware."""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from slotbot_lite.api.middleware.rate_limiter import (
    RATE_LIMITER_KEY,
    RateLimitConfig,
    RateLimiter,
    rate_limit_middleware,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestRateLimiter:
    async def test_requests_within_limit_are_allowed(self, clock):
        limiter = RateLimiter(RateLimitConfig(per_ip_limit=3), clock=clock)

        results = [await limiter.check_rate_limit("10.0.0.1") for _ in range(3)]

        assert all(allowed for allowed, _ in results)
        assert [info["remaining"] for _, info in results] == [2, 1, 0]

    async def test_request_over_limit_is_rejected_with_retry_after(self, clock):
        limiter = RateLimiter(RateLimitConfig(per_ip_limit=2), clock=clock)
        await limiter.check_rate_limit("10.0.0.1")
        clock.advance(20)
        await limiter.check_rate_limit("10.0.0.1")

        allowed, info = await limiter.check_rate_limit("10.0.0.1")

        assert not allowed
        assert info["remaining"] == 0
        assert info["retry_after"] == 41

    async def test_window_slides_after_a_minute(self, clock):
        limiter = RateLimiter(RateLimitConfig(per_ip_limit=1), clock=clock)
        await limiter.check_rate_limit("10.0.0.1")
        assert not (await limiter.check_rate_limit("10.0.0.1"))[0]

        clock.advance(60.5)

        assert (await limiter.check_rate_limit("10.0.0.1"))[0]

    async def test_rejected_requests_are_not_recorded(self, clock):
        """Hammering while limited does not extend the block."""
        limiter = RateLimiter(RateLimitConfig(per_ip_limit=1), clock=clock)
        await limiter.check_rate_limit("10.0.0.1")
        for _ in range(5):
            clock.advance(10)
            await limiter.check_rate_limit("10.0.0.1")

        clock.advance(11)
        assert (await limiter.check_rate_limit("10.0.0.1"))[0]

    async def test_clients_are_limited_independently(self, clock):
        limiter = RateLimiter(RateLimitConfig(per_ip_limit=1), clock=clock)
        await limiter.check_rate_limit("10.0.0.1")
        assert (await limiter.check_rate_limit("10.0.0.2"))[0]

    async def test_burst_limit(self, clock):
        limiter = RateLimiter(
            RateLimitConfig(per_ip_limit=100, burst_limit=2, burst_window_seconds=10), clock=clock
        )
        await limiter.check_rate_limit("ip")
        await limiter.check_rate_limit("ip")
        allowed, info = await limiter.check_rate_limit("ip")
        assert not allowed
        assert info["retry_after"] == 11

        clock.advance(10)
        assert (await limiter.check_rate_limit("ip"))[0]

    async def test_cleanup_expired_entries_and_stats(self, clock):
        limiter = RateLimiter(RateLimitConfig(per_ip_limit=5), clock=clock)
        await limiter.check_rate_limit("old")
        clock.advance(45)
        await limiter.check_rate_limit("recent")
        clock.advance(30)

        assert await limiter.cleanup_expired_entries() == 1
        stats = limiter.get_stats()
        assert stats["tracked_ips"] == 1
        assert stats["total_requests"] == 2
        assert stats["rejected_requests"] == 0

    async def test_start_and_stop_manage_cleanup_task(self, clock):
        limiter = RateLimiter(clock=clock)
        await limiter.start()
        assert limiter._cleanup_task is not None and not limiter._cleanup_task.done()
        await limiter.stop()
        assert limiter._cleanup_task.done()


async def _ok(request: web.Request) -> web.Response:
    return web.json_response({"ok": True})


@pytest.fixture
async def limited_client(clock):
    app = web.Application(middlewares=[rate_limit_middleware])
    app[RATE_LIMITER_KEY] = RateLimiter(RateLimitConfig(per_ip_limit=2), clock=clock)
    app.router.add_get("/api/ping", _ok)
    app.router.add_get("/", _ok)
    async with TestClient(TestServer(app)) as client:
        yield client


class TestRateLimitMiddleware:
    async def test_api_path_gets_limit_headers_then_429(self, limited_client):
        first = await limited_client.get("/api/ping")
        assert first.status == 200
        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"

        await limited_client.get("/api/ping")
        blocked = await limited_client.get("/api/ping")

        assert blocked.status == 429
        assert await blocked.json() == {
            "success": False,
            "error": "Too many requests. Please slow down.",
        }
        assert int(blocked.headers["Retry-After"]) >= 1

    async def test_non_api_paths_are_not_limited(self, limited_client):
        for _ in range(5):
            response = await limited_client.get("/")
            assert response.status == 200
            assert "X-RateLimit-Limit" not in response.headers

    async def test_forwarded_for_identifies_client(self, limited_client):
        for _ in range(2):
            await limited_client.get("/api/ping", headers={"X-Forwarded-For": "203.0.113.5"})
        other = await limited_client.get(
            "/api/ping", headers={"X-Forwarded-For": "203.0.113.6, 10.0.0.1"}
        )
        assert other.status == 200
