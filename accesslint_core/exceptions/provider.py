#!/usr/bin/env python3
"""
Provider Exception Classes
==========================

Provider-specific exception classes for the multi-provider chat clients.
Messages keep the HTTP status and vendor wording so retry classification can
still recognise them.
"""

from typing import Optional

from .base import AccessLintError


class ProviderError(AccessLintError):
    """
    Base exception for all provider-related errors.

    Provider and model names are recorded in ``details`` so callers can
    report which backend failed.
    """

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        model_name: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)

        if "provider_name" not in self.details and provider_name:
            self.details["provider_name"] = provider_name
        if "model_name" not in self.details and model_name:
            self.details["model_name"] = model_name


class ProviderConfigurationError(ProviderError):
    """
    Raised when provider configuration is invalid or missing.

    Used when an API key, endpoint or model name is absent.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.user_hint = (
            "The provider configuration is invalid. "
            "Please check your environment variables or .env file."
        )


class ProviderAuthenticationError(ProviderError):
    """
    Raised when provider authentication fails (HTTP 401/403).

    Never retried.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.user_hint = (
            "Authentication with the provider failed. "
            "Please check your API key."
        )


class ProviderRequestError(ProviderError):
    """Raised when the provider rejects a malformed request (HTTP 400-class)."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status
        if status is not None:
            self.details["status_code"] = status
        self.user_hint = "The provider rejected the request as invalid."


class ProviderServiceError(ProviderError):
    """Raised when the provider reports a server-side failure (HTTP 5xx)."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status
        if status is not None:
            self.details["status_code"] = status
        self.user_hint = "The provider service had an error. Please try again later."


class ProviderConnectionError(ProviderError):
    """
    Raised when provider connection fails.

    Used for network-level issues such as DNS failures or resets.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.user_hint = (
            "Failed to connect to the provider. "
            "Please check your internet connection and provider status."
        )


class ProviderResponseError(ProviderError):
    """
    Raised when provider response is invalid or malformed.
    """

    def __init__(self, message: str, response_data: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)

        if response_data:
            self.details["response_data"] = response_data

        self.user_hint = (
            "The provider returned an invalid response. "
            "This may be a temporary issue or provider API change."
        )


class RateLimitExceededError(ProviderError):
    """
    Raised when the client-side rate limiter refuses a request and waiting
    for capacity gave up.
    """

    def __init__(self, message: str, wait_time: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.wait_time = wait_time
        if wait_time is not None:
            self.details["wait_time_seconds"] = wait_time
            self.user_hint = (
                f"Token quota for this minute is used up. Try again in {wait_time} seconds."
            )
        else:
            self.user_hint = "Token quota for this minute is used up."
