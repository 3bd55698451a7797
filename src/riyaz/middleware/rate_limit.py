"""Per-client rate limiting middleware backed by the app's RateLimiter."""

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from riyaz.rate_limiter import RateLimiter

logger = structlog.get_logger()

_EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Return 429 once a client exceeds its request budget for the window.

    The limiter is read from ``app.state.rate_limiter``; without one (startup
    not run yet) requests pass through unchecked.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
        if limiter is None or request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        try:
            decision = await limiter.hit(client_ip)
        except (ConnectionError, RedisError):
            logger.warning("rate_limit_backend_unavailable", client=client_ip)
            return await call_next(request)

        headers = {
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Limit": str(decision.limit),
        }
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={"ok": False, "code": "RATE_LIMITED", "message": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": str(decision.retry_after), **headers},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
