"""CORS middleware configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sellscore.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the retail front-end origins to call the scoring API."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=["X-Request-Id", "Retry-After", "X-RateLimit-Remaining", "X-RateLimit-Limit"],
    )
