#!/usr/bin/env python3
"""
Model Exception Definitions for AccessLint Core

Errors raised while talking to a model endpoint, including the retry-aware
RetriableError that carries an explicit "retry after" hint.
"""

import math
import re
import time
from typing import Dict, Mapping, Optional

from .base import AccessLintError

_RETRY_AFTER_HEADERS = ("retry-after", "x-ratelimit-reset", "ratelimit-reset")
_RETRY_AFTER_TEXT = re.compile(r"retry after (\d+) seconds?", re.IGNORECASE)


class ModelError(AccessLintError):
    """Base exception for model-related errors."""

    pass


class RetriableError(ModelError):
    """
    Transient failure that should always be retried.

    Attributes:
        retry_after: Seconds the server asked us to wait, if it said so.
        status: HTTP status code, when the error came from a response.
        headers: Lower-cased response headers captured for diagnostics.
    """

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        status: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.retry_after = retry_after
        self.headers = headers or {}
        self.status = status
        if retry_after:
            self.user_hint = f"Rate limited. Retrying after {retry_after} seconds."
        else:
            self.user_hint = "A temporary provider error occurred. Retrying."

    @classmethod
    def from_http_response(
        cls,
        status: int,
        error_text: str,
        headers: Optional[Mapping[str, str]] = None,
        provider_name: str = "provider",
        now: Optional[float] = None,
    ) -> "RetriableError":
        """
        Build a RetriableError from a failed HTTP response.

        The retry hint is read from ``Retry-After``, ``x-ratelimit-reset`` or
        ``ratelimit-reset``. Values larger than the current Unix time are
        treated as absolute timestamps, anything else as delta-seconds. This
        is a magnitude heuristic, not a guarantee for every provider. When no
        header is usable the body is searched for "retry after N seconds".
        """
        lowered = {k.lower(): v for k, v in (headers or {}).items()}
        retry_after = parse_retry_after(lowered, now=now)

        if not retry_after and error_text:
            match = _RETRY_AFTER_TEXT.search(error_text)
            if match:
                retry_after = int(match.group(1))

        return cls(
            f"{provider_name} rate limit exceeded ({status}): {error_text}",
            retry_after=retry_after,
            headers=lowered,
            status=status,
            details={"status_code": status, "provider": provider_name},
        )


def parse_retry_after(
    headers: Mapping[str, str], now: Optional[float] = None
) -> Optional[int]:
    """Return the retry hint in seconds from lower-cased headers, or None."""
    raw = None
    for name in _RETRY_AFTER_HEADERS:
        if headers.get(name):
            raw = headers[name]
            break
    if raw is None:
        return None

    try:
        value = int(float(str(raw).strip()))
    except ValueError:
        return None

    current = time.time() if now is None else now
    if value > current:
        # Unix timestamp
        return max(0, math.ceil(value - current))
    return value


class ModelRateLimitError(RetriableError):
    """HTTP 429 from a model endpoint; ``retry_after`` carries the server's hint."""

    def __init__(self, message, retry_after=None, headers=None, status=429, details=None):
        super().__init__(
            message, retry_after=retry_after, headers=headers, status=status, details=details
        )
        if retry_after:
            self.user_hint = f"Rate limit exceeded. Retry after {retry_after} seconds."
        else:
            self.user_hint = "Rate limit exceeded. Please wait before retrying."


class ModelTimeoutError(ModelError):
    """Raised when model API request times out."""

    def __init__(self, message, timeout_seconds=None, details=None):
        super().__init__(message, details=details)
        self.timeout_seconds = timeout_seconds


class EmptyResponseError(ModelError):
    """Raised when model returns an empty response."""

    pass


class RetryCancelledError(ModelError):
    """Raised when a retry loop is cancelled through its cancellation signal."""

    def __init__(self, message="Retry cancelled", operation_name=None):
        super().__init__(message)
        self.operation_name = operation_name
        self.user_hint = "The operation was cancelled before it could complete."
