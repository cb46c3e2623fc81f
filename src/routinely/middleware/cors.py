"""CORS for the parent and professional web apps."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routinely.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Bearer tokens only, so no cookies cross origins."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"],
        max_age=600,
    )
