#!/usr/bin/env python3
"""
Usage Exception Definitions for AccessLint Core

Raised by usage stores; the token tracker logs them and keeps going.
"""

from .base import AccessLintError


class UsageError(AccessLintError):
    """Base exception for usage tracking errors."""

    pass


class UsageStoreError(UsageError):
    """Raised when persisted usage data cannot be loaded or saved."""

    def __init__(self, message, file_path=None, operation=None, original_error=None):
        super().__init__(message, original_error=original_error)
        self.file_path = file_path
        self.operation = operation
