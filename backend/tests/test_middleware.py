"""
SeriCare Backend — Middleware Tests
====================================

What:  Rate limiting (sliding window, 429 body, exempt paths), request-ID
       propagation into log records, access log levels.
How:   A minimal FastAPI app carries the middleware under test so limits can
       be set low without touching the application settings.
"""

import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from sericare.middleware.logging import level_for_status
from sericare.middleware.rate_limit import RateLimitMiddleware
from sericare.middleware.request_id import RequestIdLogFilter, RequestIDMiddleware, request_id_var


def _limited_app(max_requests=2, window_seconds=60):
    app = FastAPI()

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    app.add_middleware(RateLimitMiddleware, max_requests=max_requests, window_seconds=window_seconds)
    app.add_middleware(RequestIDMiddleware)
    return app


class TestRateLimit:

    @pytest.mark.asyncio
    async def test_rejects_after_limit(self):
        transport = ASGITransport(app=_limited_app(max_requests=2))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            first = await client.get("/ping")
            second = await client.get("/ping")
            third = await client.get("/ping", headers={"X-Request-ID": "burst-3"})

        assert first.status_code == second.status_code == 200
        assert third.status_code == 429
        assert int(third.headers["Retry-After"]) > 0
        body = third.json()
        assert body["success"] is False
        assert body["error"] == "rate_limit_exceeded"
        assert body["details"]["retry_after"] == int(third.headers["Retry-After"])
        assert body["request_id"] == "burst-3"

    @pytest.mark.asyncio
    async def test_health_is_exempt(self):
        transport = ASGITransport(app=_limited_app(max_requests=1))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            responses = [await client.get("/health") for _ in range(5)]
        assert all(r.status_code == 200 for r in responses)

    def test_window_slides(self):
        limiter = RateLimitMiddleware(FastAPI(), max_requests=2, window_seconds=10)

        assert limiter.hit("10.0.0.1", now=100.0) is None
        assert limiter.hit("10.0.0.1", now=101.0) is None
        assert limiter.hit("10.0.0.1", now=105.0) == 6
        # The first hit has left the window
        assert limiter.hit("10.0.0.1", now=110.5) is None

    def test_clients_are_independent(self):
        limiter = RateLimitMiddleware(FastAPI(), max_requests=1, window_seconds=10)
        assert limiter.hit("10.0.0.1", now=0.0) is None
        assert limiter.hit("10.0.0.2", now=0.0) is None
        assert limiter.hit("10.0.0.1", now=1.0) is not None


class TestRequestIdLogging:

    def test_filter_stamps_current_request_id(self):
        record = logging.LogRecord("sericare", logging.INFO, __file__, 1, "hello", None, None)
        token = request_id_var.set("abc12345")
        try:
            RequestIdLogFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "abc12345"

    def test_filter_outside_request(self):
        record = logging.LogRecord("sericare", logging.INFO, __file__, 1, "hello", None, None)
        RequestIdLogFilter().filter(record)
        assert record.request_id == "-"


class TestAccessLogLevels:

    @pytest.mark.parametrize(
        "status, level",
        [(200, logging.INFO), (201, logging.INFO), (401, logging.WARNING), (429, logging.WARNING), (503, logging.ERROR)],
    )
    def test_level_follows_status(self, status, level):
        assert level_for_status(status) == level
