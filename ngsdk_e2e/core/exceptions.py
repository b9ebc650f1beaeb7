"""Errors raised by the end-to-end test server.

Exception Hierarchy:
    E2EServerError (base)
    ├── SetupRequestError
    ├── SetupRoutineError
    │   └── SetupRoutineFailed
    └── BackendNotConfiguredError

Every one of them is answered with a 500 and the ``to_dict()`` body; the
browser-side tests only care that the request failed.
"""

from typing import Any


class E2EServerError(Exception):
    """Base exception for all test server errors.

    Attributes:
        message: Descriptive error message
        error_code: Machine-readable error identifier
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict | list | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details if self.details else None,
        }


class SetupRequestError(E2EServerError):
    """The ``/setup`` body is missing a name or carries malformed models."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message, error_code="invalid_setup_request", details=details)


class SetupRoutineError(E2EServerError):
    """The ``setupFn`` source cannot be turned into a callable."""

    def __init__(self, message: str, error_code: str = "invalid_setup_routine", details: dict | None = None) -> None:
        super().__init__(message, error_code=error_code, details=details)


class SetupRoutineFailed(SetupRoutineError):
    """The setup routine raised, or reported an error through ``done``."""

    def __init__(self, name: str, cause: Any) -> None:
        self.cause = cause
        message = str(cause) if str(cause) else type(cause).__name__
        details = {"name": name, "error_type": type(cause).__name__}
        if isinstance(cause, BaseException) and hasattr(cause, "to_dict"):
            details["cause"] = cause.to_dict()
        super().__init__(message, error_code="setup_routine_failed", details=details)


class BackendNotConfiguredError(E2EServerError):
    """A request reached ``/api`` before any ``/setup`` call."""

    def __init__(self, message: str = "Call /setup first.") -> None:
        super().__init__(message, error_code="backend_not_configured")
