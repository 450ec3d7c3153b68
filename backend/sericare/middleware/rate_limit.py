"""
SeriCare Backend — Rate Limiting Middleware
============================================

What:  Per-IP sliding-window limit on API requests.
Why:   Every upload costs a classifier call and disk space; login is a
       password-guessing surface.
How:   Each client IP keeps a deque of request timestamps. Timestamps older
       than the window are dropped from the left on every request; a full
       deque means 429 with Retry-After.

Limits come from settings.rate_limit_requests / rate_limit_window. State is
per process: with several workers each enforces its own limit.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from sericare.config import settings
from sericare.exceptions import RateLimitExceededError
from sericare.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/", "/health", "/docs", "/redoc", "/openapi.json"})

# Idle clients are swept after this many tracked clients
SWEEP_THRESHOLD = 1024


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_requests: Optional[int] = None, window_seconds: Optional[int] = None):
        super().__init__(app)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self._hits: Dict[str, Deque[float]] = {}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        retry_after = self.hit(client_ip, time.monotonic())
        if retry_after is not None:
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds",
                client_ip,
                self.max_requests,
                self.window_seconds,
            )
            error = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_response(request_id_var.get()),
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)

    def hit(self, client: str, now: float) -> Optional[int]:
        """
        Record one request from `client` at `now`.

        Returns: None if allowed, otherwise seconds until a slot frees up.
        """
        window_start = now - self.window_seconds
        hits = self._hits.setdefault(client, deque())
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= self.max_requests:
            return int(hits[0] - window_start) + 1

        hits.append(now)
        if len(self._hits) > SWEEP_THRESHOLD:
            self._sweep(window_start)
        return None

    def _sweep(self, window_start: float) -> None:
        idle = [ip for ip, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for ip in idle:
            del self._hits[ip]
        if idle:
            logger.debug("Dropped rate-limit state for %d idle clients", len(idle))
