"""
Error Types
===========
Application errors carry an HTTP status and a stable machine-readable code.
app.py renders any AppError as JSON; nothing here knows about Flask.

    ValidationError      422  AI or client data violates an invariant
    AuthenticationError  401  missing or invalid bearer token
    NotFoundError        404  resource missing or not owned by the caller
    UpstreamError        502  external provider failed or returned garbage
    ConfigurationError   503  required provider is not configured
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication required", details=None):
        super().__init__(message, details)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", details=None):
        super().__init__(f"{resource} not found", details)


class UpstreamError(AppError):
    """An external provider (FX, completion, search) failed."""

    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, provider: str, details=None):
        super().__init__(message, details)
        self.provider = provider

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["provider"] = self.provider
        return body


class ConfigurationError(AppError):
    """A required provider has no credentials; `hint` tells the operator what to set."""

    status_code = 503
    code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str, hint: str, details=None):
        super().__init__(message, details)
        self.hint = hint

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["suggestion"] = self.hint
        return body
