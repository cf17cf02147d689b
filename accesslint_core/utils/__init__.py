"""Shared helpers: token estimation, retry, lenient JSON and logging setup."""

from .json_parser import parse_json_safely
from .logger import setup_logging
from .retry import (
    RetryAttemptRecord,
    RetryConfig,
    RetryExecutor,
    RetryResult,
    is_retryable_error,
    with_retry,
)
from .token_estimation import TokenEstimator, estimate_tokens

__all__ = [
    "TokenEstimator",
    "estimate_tokens",
    "RetryConfig",
    "RetryResult",
    "RetryAttemptRecord",
    "RetryExecutor",
    "is_retryable_error",
    "with_retry",
    "parse_json_safely",
    "setup_logging",
]
