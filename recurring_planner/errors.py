"""
Recurrence Engine Errors

Every failure raised by the engine carries a machine-readable code, a
message and optional details, so the HTTP layer and the migration summary
can report it without inspecting exception types.
"""

from typing import Any, Dict, Optional


class RecurrenceError(Exception):
    """Base exception for recurrence engine errors"""

    code = "RECURRENCE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)


class ValidationError(RecurrenceError):
    """Malformed input, rejected before any write."""

    code = "VALIDATION_ERROR"


class PatternNotFoundError(RecurrenceError):
    code = "NOT_FOUND"


class TaskNotFoundError(PatternNotFoundError):
    """The referenced work item does not exist or is deleted."""


class UnauthorizedError(RecurrenceError):
    """Resource exists but belongs to another user."""

    code = "UNAUTHORIZED"


class ConfigurationError(RecurrenceError):
    """A stored pattern cannot perform the requested transition."""

    code = "CONFIGURATION_ERROR"


class BatchCommitError(RecurrenceError):
    """A chunk of a batched write failed; earlier chunks remain committed."""

    code = "BATCH_COMMIT_FAILED"

    def __init__(self, message: str, chunk_index: int, committed: int):
        super().__init__(message, details={"chunk_index": chunk_index, "committed": committed})
        self.chunk_index = chunk_index
        self.committed = committed


def create_error_response(error: RecurrenceError) -> Dict[str, Any]:
    """
    Create a standardized error response

    Args:
        error: The RecurrenceError to convert

    Returns:
        Standardized error response dictionary
    """
    return {
        "success": False,
        "error": {
            "code": error.code,
            "message": error.message,
            "details": error.details
        }
    }


def create_success_response(data: Any, message: Optional[str] = None) -> Dict[str, Any]:
    """
    Create a standardized success response

    Args:
        data: The response data
        message: Optional success message

    Returns:
        Standardized success response dictionary
    """
    response = {
        "success": True,
        "data": data
    }

    if message:
        response["message"] = message

    return response
