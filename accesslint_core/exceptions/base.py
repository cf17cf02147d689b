#!/usr/bin/env python3
"""
Base Exception for AccessLint Core

Everything the context, usage, retry, parser and provider layers raise
derives from AccessLintError, so a linting run can catch one type and still
show the user something readable.
"""

from typing import Optional


class AccessLintError(Exception):
    """
    Root of the AccessLint Core exception hierarchy.

    Attributes:
        message: Developer-facing description; also the ``str()`` of the error.
            Retry classification reads it, so provider errors keep HTTP status
            codes in it.
        original_error: Lower-level exception this one wraps, if any.
        user_hint: Short text safe to show in the editor or CLI.
        details: Structured context (provider, model, status code, file path)
            for logs. Never holds credentials.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        user_hint: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.user_hint = user_hint or "An internal error occurred."
        self.details = details or {}
