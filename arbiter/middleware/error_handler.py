"""
Arbiter - Error Handler Middleware
Formats every exception into the structured JSON error envelope.
"""
import logging
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from arbiter.core.errors import ErrorCode, GameError

logger = logging.getLogger("arbiter.errors")

HTTP_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
}


def _error_id() -> str:
    return str(uuid.uuid4())[:8]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _envelope(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    recoverable: bool = True,
    recovery_hint: Optional[str] = None,
    error_id: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "error": {
            "code": code.value,
            "message": message,
            "details": details or {},
            "recoverable": recoverable,
            "recovery_hint": recovery_hint,
            "error_id": error_id or _error_id(),
            "timestamp": _timestamp(),
        }
    }


def setup_error_handlers(app: FastAPI, debug: bool = False):
    """
    Setup all error handlers for the FastAPI application.

    Call this function after creating the FastAPI app to register
    exception handlers for GameError and standard exceptions.
    """

    @app.exception_handler(GameError)
    async def game_error_handler(request: Request, exc: GameError):
        """Handle GameError exceptions."""
        error_id = _error_id()
        log = logger.error if exc.code == ErrorCode.SESSION_CORRUPTED else logger.warning
        log(
            "[%s] GameError: %s - %s (%s %s)",
            error_id, exc.code.value, exc.message, request.method, request.url.path,
        )

        response_data = exc.to_dict()
        response_data["error"]["error_id"] = error_id
        response_data["error"]["timestamp"] = _timestamp()
        return JSONResponse(status_code=exc.http_status, content=response_data)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors from request parsing."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": " -> ".join(str(loc) for loc in error.get("loc", [])),
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type", "validation_error"),
            })

        return JSONResponse(
            status_code=422,
            content=_envelope(
                ErrorCode.VALIDATION_ERROR,
                "Request validation failed",
                details={"errors": errors},
                recovery_hint="Check the request data and correct any invalid fields",
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle standard HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(
                HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.UNKNOWN),
                str(exc.detail) if exc.detail else "An error occurred",
                recoverable=exc.status_code < 500,
            ),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        error_id = _error_id()
        logger.error(
            "[%s] Unhandled exception on %s %s: %s: %s",
            error_id, request.method, request.url.path, type(exc).__name__, exc,
            exc_info=True,
        )

        content = _envelope(
            ErrorCode.UNKNOWN,
            "An unexpected error occurred",
            recoverable=False,
            recovery_hint="Please try again or contact the GM",
            error_id=error_id,
        )
        if debug:
            content["error"]["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exception(type(exc), exc, exc.__traceback__),
            }

        return JSONResponse(status_code=500, content=content)

    return app
