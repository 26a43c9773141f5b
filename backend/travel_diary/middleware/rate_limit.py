"""
TravelDiary Backend: Rate Limiting Middleware
==============================================

What:  Per-client sliding window rate limiter.
How:   Keeps the timestamps of each client's requests inside the window in a
       deque. A request that would exceed `max_requests` within
       `window_seconds` is answered with 429 and a Retry-After header.

Algorithm: Sliding Window Log
    1. Drop timestamps older than now - window_seconds.
    2. If the remaining count reaches the limit, reject.
    3. Otherwise record now and pass the request on.

Scope:
    State lives in the process. Several workers each enforce their own
    limit; a shared limiter (Redis) is needed for a global one.
"""

import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from travel_diary.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})

# Idle clients are purged after this many admitted requests.
_CLEANUP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Args:
        app:            The wrapped ASGI application.
        max_requests:   Requests allowed per client within one window.
        window_seconds: Window length.
        excluded_paths: Paths never limited (health probes, API docs).
        clock:          Time source, injectable for tests.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_requests: int = 300,
        window_seconds: int = 3600,
        excluded_paths: Optional[Iterable[str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.excluded_paths = frozenset(excluded_paths) if excluded_paths is not None else DEFAULT_EXCLUDED_PATHS
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._admitted = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.excluded_paths or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = self._clock()
        window_start = now - self.window_seconds

        timestamps = self._requests.setdefault(client_ip, deque())
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                self.window_seconds,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Please wait {retry_after} seconds before retrying.",
                    "details": {"retry_after": retry_after},
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)
        self._admitted += 1
        if self._admitted % _CLEANUP_EVERY == 0:
            self._purge_idle(window_start)

        return await call_next(request)

    def _purge_idle(self, window_start: float) -> None:
        idle = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for ip in idle:
            del self._requests[ip]
        if idle:
            logger.debug("Dropped rate limit state for %d idle clients", len(idle))
