# FILE: lawdesk/errors.py
"""
Error kinds surfaced to callers.

UserError        - caller caused (missing field, empty query, flagged content) → 400
ApplicationError - upstream/contract violation (config, malformed responses)  → 500
"""

from typing import Any, Dict, Optional


class UserError(Exception):
    """Safe to show verbatim. `data` carries structured detail (e.g. flagged categories)."""

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data


class ApplicationError(Exception):
    """Logged with full detail; the caller only ever sees a generic message."""

    def __init__(self, message: str, data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data


GENERIC_ERROR_MESSAGE = "There was an error processing your request"


def error_body(err: Exception) -> Dict[str, Any]:
    """JSON body for an error response. Never mixed with the plain-text stream."""
    if isinstance(err, UserError):
        body: Dict[str, Any] = {"error": err.message}
        if err.data is not None:
            body["data"] = err.data
        return body
    return {"error": GENERIC_ERROR_MESSAGE}


def status_for(err: Exception) -> int:
    return 400 if isinstance(err, UserError) else 500
