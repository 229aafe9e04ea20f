"""Global exception handlers enforcing the error envelope contract."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rotator.schemas.rotation import ErrorResponse

logger = structlog.get_logger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    """Build standardized JSON error payload."""
    return JSONResponse(
        status_code=status_code, content=ErrorResponse(error=message).model_dump()
    )


def _extract_message(detail: Any) -> str:
    """Normalize exception detail payload into a message."""
    if isinstance(detail, dict):
        return str(detail.get("error") or detail.get("detail") or "Request failed.")
    if isinstance(detail, str):
        return detail
    return "Request failed."


def _sanitize_message(message: str, status_code: int, environment: str) -> str:
    """Hide internal failure details outside development."""
    if environment != "development" and status_code >= 500:
        return "Internal server error."
    return message


def register_exception_handlers(app: FastAPI, environment: str) -> None:
    """Register global exception handlers enforcing error shape contract."""

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Normalize framework HTTP exceptions to contract payload."""
        del request
        return _error_response(status_code=exc.status_code, message=_extract_message(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Map request validation errors to a 400 payload."""
        del request
        message = "Invalid request payload."
        if environment == "development":
            errors = exc.errors()
            if errors:
                message = f"Invalid request payload: {errors[0].get('msg', 'validation error')}."
        return _error_response(status_code=400, message=message)

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        """Mask internal errors and enforce contract payload."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        return _error_response(
            status_code=500, message=_sanitize_message(str(exc), 500, environment)
        )
