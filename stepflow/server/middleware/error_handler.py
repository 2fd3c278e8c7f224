"""
Global exception handlers for the API.

Provides standardized error responses for all exceptions.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stepflow.exceptions import StepflowError
from stepflow.server.errors import ErrorCode, classify, create_error_response

logger = logging.getLogger(__name__)


def _respond(code: ErrorCode, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=code.http_status,
        content=create_error_response(code, message, details=details),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request body validation errors."""
    errors = [
        {key: str(value) if isinstance(value, (Exception, type)) else value for key, value in error.items()}
        for error in exc.errors()
    ]
    return _respond(ErrorCode.VALIDATION_ERROR, "Request validation failed", {"errors": errors})


async def stepflow_error_handler(request: Request, exc: StepflowError):
    """Handle stepflow exceptions raised by route handlers."""
    code, details = classify(exc)
    if code == ErrorCode.INTERNAL_ERROR:
        logger.exception(f"Unhandled stepflow error: {exc}")
        return _respond(code, "An internal server error occurred")
    return _respond(code, str(exc), details)


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return _respond(ErrorCode.INTERNAL_ERROR, "An internal server error occurred")
