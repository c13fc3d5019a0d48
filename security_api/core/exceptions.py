"""
Exception hierarchy

Every error the API reports is a SecurityAPIError subclass carrying a
machine-checkable code and an HTTP status. Handlers in main.py render them as
{"error": code, "message": message}.
"""
from typing import Any, Dict, Optional


class SecurityAPIError(Exception):
    """Base exception for all application errors."""

    default_code = "internal_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SecurityAPIError):
    """Malformed or missing input."""

    default_code = "validation_error"
    status_code = 400


class Unauthorized(SecurityAPIError):
    """Missing or invalid credentials/token."""

    default_code = "unauthorized"
    status_code = 401


class Forbidden(SecurityAPIError):
    """Valid identity, insufficient role."""

    default_code = "forbidden"
    status_code = 403


class NotFound(SecurityAPIError):
    default_code = "not_found"
    status_code = 404

    def __init__(self, resource: str, identifier: Any = None, **kwargs):
        message = f"{resource} not found" if identifier is None else f"{resource} {identifier} not found"
        super().__init__(message, **kwargs)


class Conflict(SecurityAPIError):
    """Duplicate unique key."""

    default_code = "conflict"
    status_code = 409


class InternalError(SecurityAPIError):
    default_code = "internal_error"
    status_code = 500
