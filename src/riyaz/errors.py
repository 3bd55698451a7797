"""Engine error taxonomy.

Services raise these internally and convert them to ``{ok: false, code,
message}`` results at their public boundary. Routers map the class to an HTTP
status. ``InfrastructureError`` is the only one that propagates to the global
exception handler.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base class for typed engine errors."""

    status_code = 400

    def __init__(self, code: str, message: str = "", **extra: Any) -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code
        self.extra = extra

    def to_result(self) -> dict[str, Any]:
        return {"ok": False, "code": self.code, "message": self.message, **self.extra}


class ValidationError(EngineError):
    """Bad input the user can fix (MIN_DURATION, MISSING_IDEMPOTENCY_KEY)."""

    status_code = 400


class RateLimitError(EngineError):
    """Daily cap reached; the user has to wait."""

    status_code = 429


class StateConflictError(EngineError):
    """Informational conflicts (LEAGUE_LOCKED, ALREADY_CLAIMED, NOT_COMPLETED)."""

    status_code = 409


class NotFoundError(EngineError):
    status_code = 404


class AuthorizationError(EngineError):
    """A prerequisite is missing (PREMIUM_REQUIRED, INCOMPLETE_PROFILE)."""

    status_code = 403


class InfrastructureError(EngineError):
    """Storage or transaction failure. Retryable, surfaced as an opaque failure."""

    status_code = 503

    def __init__(self, message: str = "Temporary failure, please retry") -> None:
        super().__init__("INTERNAL_ERROR", message)


def status_for_result(result: dict[str, Any]) -> int:
    """HTTP status for a service result dict produced by ``EngineError.to_result``."""
    if result.get("ok", True):
        return 200
    return _STATUS_BY_CODE.get(result.get("code", ""), 400)


_STATUS_BY_CODE: dict[str, int] = {
    "MIN_DURATION": ValidationError.status_code,
    "MISSING_IDEMPOTENCY_KEY": ValidationError.status_code,
    "DAILY_LIMIT_REACHED": RateLimitError.status_code,
    "DAILY_MINUTES_EXCEEDED": RateLimitError.status_code,
    "LEAGUE_LOCKED": StateConflictError.status_code,
    "NOT_COMPLETED": StateConflictError.status_code,
    "NOT_FOUND": NotFoundError.status_code,
    "INVALID_INVITE": ValidationError.status_code,
    "PREMIUM_REQUIRED": AuthorizationError.status_code,
    "INCOMPLETE_PROFILE": AuthorizationError.status_code,
    "INTERNAL_ERROR": InfrastructureError.status_code,
}
