"""Usage accounting: rate limiting, cost tracking and persistence."""

from .rate_limiter import RateLimitDecision, RateLimiter, RateLimitWindow
from .store import JsonFileUsageStore, MemoryUsageStore, UsageStore
from .token_tracker import ApiUsageStats, StreamingTokenInfo, TokenTracker, UsageRecord

__all__ = [
    "RateLimiter",
    "RateLimitDecision",
    "RateLimitWindow",
    "UsageStore",
    "MemoryUsageStore",
    "JsonFileUsageStore",
    "TokenTracker",
    "UsageRecord",
    "ApiUsageStats",
    "StreamingTokenInfo",
]
