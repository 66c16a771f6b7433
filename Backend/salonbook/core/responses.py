"""
Standardized API Response Module

Provides consistent error formatting for the booking API.

RESPONSE FORMAT:
    Error:
        {
            "error": {
                "code": "ERROR_CODE",
                "message": "Human-readable message",
                "details": {...}  # Optional extra context
            },
            "status": "error"
        }

    Successful responses return the resource model directly; operations
    without a resource body use success_response().

ERROR CODES:
    - NOT_FOUND / APPOINTMENT_NOT_FOUND / SERVICE_NOT_FOUND / STYLIST_NOT_FOUND
    - VALIDATION_ERROR: Request data failed validation
    - SLOT_UNAVAILABLE: Requested interval is taken, blocked or outside hours
    - INVALID_DURATION: Duration can never fit an operating window
    - NO_CHANGE_REQUESTED: Reschedule target equals the current slot
    - STATE_CONFLICT: Lifecycle transition not allowed
    - TRANSIENT_CONTENTION: Serialization key busy, retry with backoff
    - INTERNAL_ERROR: Server-side error
"""

from typing import Any, Optional
from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error envelope, used for OpenAPI documentation of error responses."""
    error: ErrorDetail
    status: str = "error"


# ============================================================================
# COMMON ERROR CODES
# ============================================================================

class ErrorCodes:
    """Standard error codes for API responses."""

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"
    APPOINTMENT_NOT_FOUND = "APPOINTMENT_NOT_FOUND"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    STYLIST_NOT_FOUND = "STYLIST_NOT_FOUND"

    # Validation errors (400 / 422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_DURATION = "INVALID_DURATION"
    NO_CHANGE_REQUESTED = "NO_CHANGE_REQUESTED"

    # Conflict errors (409)
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    STATE_CONFLICT = "STATE_CONFLICT"

    # Retryable (503)
    TRANSIENT_CONTENTION = "TRANSIENT_CONTENTION"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def success_response(data: Any) -> dict:
    """
    Create a standardized success response dict.

    Use this for simple responses where Pydantic model isn't needed.
    """
    return {"data": data, "status": "success"}


def error_response(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """
    Create a standardized error response dict.
    """
    response = {
        "error": {
            "code": code,
            "message": message,
        },
        "status": "error",
    }
    if details:
        response["error"]["details"] = details
    return response
