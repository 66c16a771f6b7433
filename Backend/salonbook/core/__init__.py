"""
Core module - configuration, database, clock, and response formatting.
"""
from .config import Settings, get_settings
from .db import get_session, Base, engine, AsyncSessionLocal
from .clock import SalonClock, FixedClock, get_clock
from .responses import (
    ErrorDetail,
    ErrorResponse,
    ErrorCodes,
    success_response,
    error_response,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "get_session",
    "Base",
    "engine",
    "AsyncSessionLocal",
    # Clock
    "SalonClock",
    "FixedClock",
    "get_clock",
    # Responses
    "ErrorDetail",
    "ErrorResponse",
    "ErrorCodes",
    "success_response",
    "error_response",
]
