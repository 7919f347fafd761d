"""Exception handlers: every error leaves the API as JSON."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sellscore.gamification.errors import CooldownActive, PersistenceFailure, ScoringError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(ScoringError)
    async def scoring_error_handler(request: Request, exc: ScoringError) -> JSONResponse:
        """Render engine errors with their status code, code and details."""
        headers: dict[str, str] = {}
        if isinstance(exc, CooldownActive):
            headers["Retry-After"] = str(exc.retry_after_seconds)
        elif isinstance(exc, PersistenceFailure):
            headers["Retry-After"] = "1"
        log = logger.warning if exc.status_code >= 500 else logger.info
        log("scoring_error", path=request.url.path, code=exc.code, detail=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers or None)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "code": "validation_error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    """Request validation errors without the non-serializable ``ctx``/``input`` parts."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
