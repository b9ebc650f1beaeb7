"""Errors raised while generating a services script."""

from __future__ import annotations

from typing import Any


class GeneratorError(Exception):
    """Raised when the generator cannot produce a script.

    Attributes:
        message: Descriptive error message
        details: Additional context, e.g. the offending option values
    """

    def __init__(self, message: str, details: dict[str, Any] | list[Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)
