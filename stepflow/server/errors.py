"""
Error bodies returned by the stepflow API.

Every failure response has the shape ``{"error": {code, message, details}}``.
Which code and HTTP status a stepflow exception maps to is decided here, so
the handlers in ``middleware.error_handler`` stay thin.
"""

from enum import Enum
from typing import Any, Dict, Optional, Tuple

from fastapi import status

from stepflow.exceptions import (
    InputValidationError,
    StepflowError,
    WorkflowLoadError,
    WorkflowNotFoundError,
)


class ErrorCode(str, Enum):
    """Machine-readable ``error.code`` values."""

    WORKFLOW_NOT_FOUND = "WORKFLOW_NOT_FOUND"
    WORKFLOW_VALIDATION_FAILED = "WORKFLOW_VALIDATION_FAILED"
    INPUT_VALIDATION_FAILED = "INPUT_VALIDATION_FAILED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorCode.WORKFLOW_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.WORKFLOW_VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INPUT_VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def create_error_response(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Wrap ``code``, ``message`` and ``details`` in the ``error`` envelope."""
    return {"error": {"code": code.value, "message": message, "details": details}}


def classify(exc: StepflowError) -> Tuple[ErrorCode, Optional[Dict[str, Any]]]:
    """Error code and details for a stepflow exception raised by a route.

    A rejected document carries its whole ValidationResult as details, so
    clients see every error and warning, not just the first.
    """
    if isinstance(exc, WorkflowNotFoundError):
        return ErrorCode.WORKFLOW_NOT_FOUND, {"name": exc.name}
    if isinstance(exc, WorkflowLoadError):
        return ErrorCode.WORKFLOW_VALIDATION_FAILED, exc.result.to_dict() if exc.result else None
    if isinstance(exc, InputValidationError):
        return ErrorCode.INPUT_VALIDATION_FAILED, {"field": exc.field}
    return ErrorCode.INTERNAL_ERROR, None
