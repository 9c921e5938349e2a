# Overview: API error taxonomy shared by services and routes.

from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Base class for errors that map onto a JSON error response."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None, details: Any = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict:
        body: dict = {"message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    """400-level input problem or business rule violation."""
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Not found"


class AuthError(ApiError):
    """Missing, invalid or expired credential."""
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(ApiError):
    status_code = 403
    default_message = "Access denied. Super Admin only."


class ServerError(ApiError):
    status_code = 500
    default_message = "Server error"
