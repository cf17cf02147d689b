#!/usr/bin/env python3
"""
Context Exception Definitions for AccessLint Core

All context-related exceptions inherit from AccessLintError.
"""

from typing import Any

from .base import AccessLintError


class ContextError(AccessLintError):
    """Base exception for context management errors."""

    pass


class ContextValidationError(ContextError):
    """Raised when a context-management argument is invalid."""

    def __init__(
        self, message: str, validation_type: str = None, invalid_value: Any = None
    ):
        super().__init__(message)
        self.validation_type = validation_type
        self.invalid_value = invalid_value
