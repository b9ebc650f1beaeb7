"""Errors raised by the backend-model framework.

Every error carries the HTTP status the REST layer answers with, so route
handlers never translate exceptions themselves.

Exception Hierarchy:
    BackendError (base)
    ├── ModelDefinitionError
    ├── ModelNotFoundError
    ├── BadRequestError
    ├── ValidationError
    ├── LoginFailedError
    ├── AuthorizationRequiredError
    └── AccessDeniedError
"""

from __future__ import annotations

from typing import Any


class BackendError(Exception):
    """Base exception for all backend-model errors.

    Attributes:
        message: Descriptive error message
        status_code: HTTP status returned by the REST layer
        code: Machine-readable error identifier
        details: Additional context about the error
    """

    status_code: int = 500
    default_code: str | None = None

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details
        super().__init__(self.message)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """Render the error in the shape generated clients expect."""
        payload: dict[str, Any] = {
            "statusCode": self.status_code,
            "name": self.name,
            "message": self.message,
        }
        if self.code:
            payload["code"] = self.code
        if self.details is not None:
            payload["details"] = self.details
        return {"error": payload}


class ModelDefinitionError(BackendError):
    """Raised when a model description cannot be turned into a model."""

    status_code = 500
    default_code = "INVALID_MODEL_DEFINITION"


class ModelNotFoundError(BackendError):
    """Raised when a record id does not exist."""

    status_code = 404
    default_code = "MODEL_NOT_FOUND"


class BadRequestError(BackendError):
    """Raised when request arguments such as a filter are malformed."""

    status_code = 400
    default_code = "BAD_REQUEST"


class ValidationError(BackendError):
    """Raised when record data does not satisfy the model's properties."""

    status_code = 422
    default_code = "VALIDATION_FAILED"


class LoginFailedError(BackendError):
    """Raised when credentials do not match a user."""

    status_code = 401
    default_code = "LOGIN_FAILED"


class AuthorizationRequiredError(BackendError):
    """Raised when an anonymous caller hits a protected method."""

    status_code = 401
    default_code = "AUTHORIZATION_REQUIRED"


class AccessDeniedError(BackendError):
    """Raised when an authenticated caller is denied by an ACL."""

    status_code = 403
    default_code = "ACCESS_DENIED"
