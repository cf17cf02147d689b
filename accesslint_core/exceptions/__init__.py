#!/usr/bin/env python3
"""
AccessLint Exceptions Package

Unified exception hierarchy for the context, retry, usage and parser layers.
"""

# Base exceptions
from .base import AccessLintError

# Model exceptions
from .model import (
    EmptyResponseError,
    ModelError,
    ModelRateLimitError,
    ModelTimeoutError,
    RetriableError,
    RetryCancelledError,
    parse_retry_after,
)

# Provider exceptions
from .provider import (
    ProviderAuthenticationError,
    ProviderConfigurationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRequestError,
    ProviderResponseError,
    ProviderServiceError,
    RateLimitExceededError,
)

# Tool exceptions
from .tools import (
    MALFORMED_XML,
    MAX_MISTAKES,
    PARSE_ERROR_KINDS,
    SCHEMA_VALIDATION,
    UNKNOWN_TOOL,
    MaxMistakesError,
    ToolCallParseError,
    ToolError,
)

# Context exceptions
from .context import ContextError, ContextValidationError

# Config exceptions
from .config import ConfigError

# Usage exceptions
from .usage import UsageError, UsageStoreError


__all__ = [
    # Base
    "AccessLintError",
    # Model
    "ModelError",
    "RetriableError",
    "ModelRateLimitError",
    "ModelTimeoutError",
    "EmptyResponseError",
    "RetryCancelledError",
    "parse_retry_after",
    # Provider
    "ProviderError",
    "ProviderConfigurationError",
    "ProviderAuthenticationError",
    "ProviderRequestError",
    "ProviderServiceError",
    "ProviderConnectionError",
    "ProviderResponseError",
    "RateLimitExceededError",
    # Tool
    "ToolError",
    "ToolCallParseError",
    "MaxMistakesError",
    "UNKNOWN_TOOL",
    "MALFORMED_XML",
    "SCHEMA_VALIDATION",
    "MAX_MISTAKES",
    "PARSE_ERROR_KINDS",
    # Context
    "ContextError",
    "ContextValidationError",
    # Config
    "ConfigError",
    # Usage
    "UsageError",
    "UsageStoreError",
]
