"""CORS for the practice app's web origins."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from riyaz.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Browsers call the engine directly with a bearer token, so no cookies are involved."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"],
    )
