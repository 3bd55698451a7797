"""Middleware registration."""

from fastapi import FastAPI

from riyaz.config import Settings
from riyaz.middleware.cors import setup_cors
from riyaz.middleware.error_handler import setup_error_handlers
from riyaz.middleware.logging import setup_logging
from riyaz.middleware.rate_limit import RateLimitMiddleware
from riyaz.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost).
    CORS stays outermost so 429 responses still carry CORS headers.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
