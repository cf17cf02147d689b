#!/usr/bin/env python3
"""
Configuration Exception Definitions for AccessLint Core
"""

from .base import AccessLintError


class ConfigError(AccessLintError):
    """Raised when settings or model tables are invalid."""

    def __init__(self, message, field_name=None, details=None):
        super().__init__(message, details=details)
        self.field_name = field_name
        self.user_hint = "Configuration is invalid. Check your environment variables."
