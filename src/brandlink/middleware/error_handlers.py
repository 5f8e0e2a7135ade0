"""
Central exception handlers.

Maps `AppError` subclasses, request validation failures and unexpected exceptions
onto a uniform JSON envelope:

```json
{"success": false, "error": {"code": "not_found", "message": "...", "details": {}}}
```
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.responses import JSONResponse

from brandlink.config import settings
from brandlink.managers.logging_manager import get_logger
from brandlink.utils.errors import AppError
from brandlink.utils.logging_utils import log_error_with_context

logger = get_logger(prefix="[ErrorHandler]")


def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message, "details": jsonable_encoder(details or {})},
        },
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        log_error_with_context(exc, {"path": request.url.path, "method": request.method})
    else:
        logger.info("%s %s -> %d %s: %s", request.method, request.url.path, exc.status_code, exc.code, exc.message)
    return _error_response(exc.status_code, **exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Validation failed on %s %s", request.method, request.url.path)
    return _error_response(400, "validation_error", "Request validation failed", {"errors": exc.errors()})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error_with_context(exc, {"path": request.url.path, "method": request.method})
    message = "Internal server error" if settings.is_production else str(exc)
    return _error_response(500, "internal_error", message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
