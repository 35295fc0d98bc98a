"""Sliding-window rate limiter middleware for FastAPI."""
import time
from collections import defaultdict, deque

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from trialgate.config import settings

# Only endpoints that can reach the upstream AI service are limited.
_LIMITED_SUFFIXES = ("/chat", "/sessions")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP sliding-window rate limiter.
    Allows RATE_LIMIT_REQUESTS requests per RATE_LIMIT_WINDOW_S seconds.
    """

    def __init__(self, app):
        super().__init__(app)
        # ip → deque of request timestamps
        self._windows: dict[str, deque] = defaultdict(deque)

    def _get_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def allow(self, ip: str, now: float) -> bool:
        window = settings.rate_limit_window_s
        dq = self._windows[ip]

        # Evict timestamps outside the window
        while dq and now - dq[0] > window:
            dq.popleft()

        if len(dq) >= settings.rate_limit_requests:
            return False
        dq.append(now)
        return True

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method != "POST" or not request.url.path.endswith(_LIMITED_SUFFIXES):
            return await call_next(request)

        if not self.allow(self._get_ip(request), time.monotonic()):
            return Response(
                content='{"error":"rate limit exceeded"}',
                status_code=429,
                media_type="application/json",
                headers={"Retry-After": str(settings.rate_limit_window_s)},
            )
        return await call_next(request)
