"""Typed errors raised by the scoring engine.

Every public engine operation either returns a result or raises one of these;
the HTTP layer renders them through a single exception handler.
"""

from __future__ import annotations

from typing import Any


class ScoringError(Exception):
    """Base class for all scoring engine errors."""

    status_code = 500
    code = "scoring_error"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.extra}


class ValidationError(ScoringError):
    """Malformed input (bad points, unknown goal type, bad month)."""

    status_code = 422
    code = "validation_error"


class PermissionDenied(ScoringError):
    """Actor role may not perform the operation."""

    status_code = 403
    code = "permission_denied"


class RateLimitExceeded(ScoringError):
    """Guard-rail rejection on the privileged adjustment path."""

    status_code = 429
    code = "rate_limit_exceeded"


class CooldownActive(RateLimitExceeded):
    code = "cooldown_active"

    def __init__(self, retry_after_seconds: int, cooldown_hours: int) -> None:
        super().__init__(
            f"Wait {cooldown_hours} hours between adjustments for the same user",
            retry_after_seconds=retry_after_seconds,
            cooldown_hours=cooldown_hours,
        )
        self.retry_after_seconds = retry_after_seconds


class DailyCapExceeded(RateLimitExceeded):
    code = "daily_cap_exceeded"

    def __init__(self, requested: int, remaining: int, cap: int) -> None:
        super().__init__(
            f"Daily adjustment cap of {cap} points exceeded ({remaining} remaining today)",
            requested=requested,
            remaining=remaining,
            cap=cap,
        )
        self.remaining = remaining


class NotFound(ScoringError):
    status_code = 404
    code = "not_found"


class ConflictAlreadyAwarded(ScoringError):
    """A badge or trophy insert lost a uniqueness race. Never leaves the engine."""

    status_code = 409
    code = "already_awarded"


class PersistenceFailure(ScoringError):
    """Storage error; the transaction was rolled back and the call may be retried."""

    status_code = 503
    code = "persistence_failure"
