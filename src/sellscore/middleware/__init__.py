"""HTTP plumbing shared by the scoring and health routes."""

from fastapi import FastAPI

from sellscore.config import Settings
from sellscore.middleware.cors import setup_cors
from sellscore.middleware.error_handler import setup_error_handlers
from sellscore.middleware.logging import setup_logging
from sellscore.middleware.rate_limit import RateLimitMiddleware
from sellscore.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install structlog, scoring error mapping and the middleware stack.

    The outermost layer is the one added last: CORS wraps the request-id
    layer, which wraps the per-client rate limiter.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
