"""
Rate Limiting
=============
Coarse one-minute token window per provider.

The window is anchored at a timestamp and is rolled lazily: every read or
write first checks whether 60 seconds have passed since the anchor and, if
so, zeroes the counters and moves the anchor to "now". Nothing here sleeps
except ``wait_for_capacity``, which callers opt into.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from accesslint_core.exceptions import ConfigError

WINDOW_SECONDS = 60
DEFAULT_REQUESTS_PER_MINUTE = 50
DEFAULT_BURST_THRESHOLD = 0.8


@dataclass
class RateLimitWindow:
    """
    Snapshot of the limiter's current window.

    Attributes:
        tokens_per_minute: Quota.
        current_minute_tokens: Tokens recorded since ``minute_window_start``.
        minute_window_start: Clock value the window is anchored at.
        is_limit_exceeded: Recorded usage went over the quota.
        time_until_reset: Whole seconds until the window rolls.
    """

    tokens_per_minute: int
    current_minute_tokens: int
    minute_window_start: float
    is_limit_exceeded: bool
    time_until_reset: int


@dataclass
class RateLimitDecision:
    allowed: bool
    reason: Optional[str] = None
    wait_time: Optional[int] = None


class RateLimiter:
    """
    Token (and optionally request) quota over a coarse one-minute window.

    One instance per provider per session; counters are plain instance state.
    """

    def __init__(
        self,
        tokens_per_minute: int,
        requests_per_minute: Optional[int] = None,
        burst_threshold: float = DEFAULT_BURST_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ):
        self.logger = logging.getLogger(__name__)
        self._clock = clock
        self._validate(tokens_per_minute, requests_per_minute, burst_threshold)
        self.tokens_per_minute = tokens_per_minute
        self.requests_per_minute = requests_per_minute
        self.burst_threshold = burst_threshold

        self._window_start = self._clock()
        self._minute_tokens = 0
        self._minute_requests = 0
        self._limit_exceeded = False

    @staticmethod
    def _validate(tokens_per_minute, requests_per_minute, burst_threshold):
        if tokens_per_minute is None or tokens_per_minute <= 0:
            raise ConfigError(
                f"tokens_per_minute must be positive, got {tokens_per_minute}",
                field_name="tokens_per_minute",
            )
        if requests_per_minute is not None and requests_per_minute <= 0:
            raise ConfigError(
                f"requests_per_minute must be positive, got {requests_per_minute}",
                field_name="requests_per_minute",
            )
        if not 0 < burst_threshold <= 1:
            raise ConfigError(
                f"burst_threshold must be in (0, 1], got {burst_threshold}",
                field_name="burst_threshold",
            )

    # ------------------------------------------------------------------ window

    def _roll_window(self) -> int:
        """Reset the window if it has expired; return seconds until it resets."""
        now = self._clock()
        elapsed = now - self._window_start

        if elapsed >= WINDOW_SECONDS:
            self.logger.debug(
                "Rate limit window reset after %.1fs (%d tokens, %d requests)",
                elapsed,
                self._minute_tokens,
                self._minute_requests,
            )
            self._minute_tokens = 0
            self._minute_requests = 0
            self._limit_exceeded = False
            self._window_start = now
            elapsed = 0

        return max(0, WINDOW_SECONDS - math.floor(elapsed))

    @property
    def burst_budget(self) -> int:
        return math.floor(self.tokens_per_minute * self.burst_threshold)

    # ------------------------------------------------------------------ checks

    def check_rate_limit(self, estimated_tokens: int) -> RateLimitDecision:
        """
        Decide whether a request of ``estimated_tokens`` fits this window.

        Never sleeps; on denial ``wait_time`` is the whole seconds left until
        the window resets.
        """
        time_until_reset = self._roll_window()

        if self._minute_tokens + estimated_tokens > self.tokens_per_minute:
            return RateLimitDecision(
                allowed=False,
                reason=(
                    f"Would exceed rate limit ({self._minute_tokens} + {estimated_tokens} "
                    f"> {self.tokens_per_minute} tokens/minute)"
                ),
                wait_time=math.ceil(time_until_reset),
            )

        if self.requests_per_minute and self._minute_requests >= self.requests_per_minute:
            return RateLimitDecision(
                allowed=False,
                reason=(
                    f"Would exceed request limit ({self._minute_requests} "
                    f">= {self.requests_per_minute} requests/minute)"
                ),
                wait_time=math.ceil(time_until_reset),
            )

        return RateLimitDecision(allowed=True)

    def check_burst(self, estimated_tokens: int) -> RateLimitDecision:
        """Same check against the burst budget, a fraction of the quota."""
        time_until_reset = self._roll_window()
        budget = self.burst_budget
        if self._minute_tokens + estimated_tokens > budget:
            return RateLimitDecision(
                allowed=False,
                reason=(
                    f"Would exceed burst budget ({self._minute_tokens} + {estimated_tokens} "
                    f"> {budget} tokens)"
                ),
                wait_time=math.ceil(time_until_reset),
            )
        return RateLimitDecision(allowed=True)

    def record_usage(self, tokens: int, requests: int = 1):
        """Add actual usage to the current window."""
        self._roll_window()
        self._minute_tokens += max(0, tokens)
        self._minute_requests += requests
        self._limit_exceeded = self._minute_tokens > self.tokens_per_minute

        if self._limit_exceeded:
            self.logger.warning(
                "Rate limit exceeded: %d/%d tokens/minute",
                self._minute_tokens,
                self.tokens_per_minute,
            )
        elif self._minute_tokens >= self.burst_budget:
            self.logger.warning(
                "High token usage: %d/%d tokens/minute",
                self._minute_tokens,
                self.tokens_per_minute,
            )

    # ------------------------------------------------------------------ introspection

    def get_window(self) -> RateLimitWindow:
        time_until_reset = self._roll_window()
        return RateLimitWindow(
            tokens_per_minute=self.tokens_per_minute,
            current_minute_tokens=self._minute_tokens,
            minute_window_start=self._window_start,
            is_limit_exceeded=self._limit_exceeded,
            time_until_reset=time_until_reset,
        )

    def get_current_usage(self) -> Dict[str, Any]:
        time_until_reset = self._roll_window()
        return {
            "tokens": self._minute_tokens,
            "requests": self._minute_requests,
            "percent_used": self._minute_tokens / self.tokens_per_minute * 100,
            "time_until_reset": time_until_reset,
        }

    def reset(self):
        self._minute_tokens = 0
        self._minute_requests = 0
        self._limit_exceeded = False
        self._window_start = self._clock()

    def update_config(
        self,
        tokens_per_minute: Optional[int] = None,
        requests_per_minute: Optional[int] = None,
        burst_threshold: Optional[float] = None,
    ):
        tokens = tokens_per_minute if tokens_per_minute is not None else self.tokens_per_minute
        requests = (
            requests_per_minute if requests_per_minute is not None else self.requests_per_minute
        )
        burst = burst_threshold if burst_threshold is not None else self.burst_threshold
        self._validate(tokens, requests, burst)

        self.tokens_per_minute = tokens
        self.requests_per_minute = requests
        self.burst_threshold = burst
        self.logger.info(
            "Rate limiter updated: %d tokens/min, %s requests/min, burst %.2f",
            tokens,
            requests,
            burst,
        )

    # ------------------------------------------------------------------ caller-side waiting

    async def wait_for_capacity(
        self,
        estimated_tokens: int,
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> bool:
        """
        Check, and sleep until the window resets, up to ``max_attempts`` checks.

        Returns:
            True once the request fits, False if it still does not after the
            last attempt or can never fit in one window.
        """
        if estimated_tokens > self.tokens_per_minute:
            self.logger.error(
                "Request of %d tokens can never fit a %d tokens/minute quota",
                estimated_tokens,
                self.tokens_per_minute,
            )
            return False

        for attempt in range(1, max_attempts + 1):
            decision = self.check_rate_limit(estimated_tokens)
            if decision.allowed:
                return True
            if attempt == max_attempts:
                break

            wait = max(1, decision.wait_time or 0)
            self.logger.warning(
                "%s; waiting %ds (attempt %d/%d)", decision.reason, wait, attempt, max_attempts
            )
            await sleep(wait)

        self.logger.error("Rate limit capacity not available after %d attempts", max_attempts)
        return False
