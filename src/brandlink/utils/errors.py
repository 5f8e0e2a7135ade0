"""
Application exception hierarchy.

Every error the services raise on purpose derives from `AppError`, which carries the
HTTP status and a machine-readable code. The handlers in
`brandlink.middleware.error_handlers` turn them into JSON responses.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base application error with an HTTP status code."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    code = "authentication_failed"


class AuthorizationError(AppError):
    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class AccountLockedError(AppError):
    status_code = 423
    code = "account_locked"


class RateLimitError(AppError):
    status_code = 429
    code = "rate_limit_exceeded"


class ExternalServiceError(AppError):
    status_code = 502
    code = "external_service_error"


class SecurityServiceError(AppError):
    code = "security_service_error"


class BlockchainError(ExternalServiceError):
    code = "blockchain_error"


class MediaError(AppError):
    status_code = 400
    code = "media_error"
