"""
Retry utility for handling transient errors in provider interactions.

Exponential backoff with jitter on top of tenacity's AsyncRetrying, aware of
the explicit retry-after hint carried by RetriableError. Delays are seconds.
"""

import asyncio
import functools
import logging
import random
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, List, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from accesslint_core.exceptions import RetriableError, RetryCancelledError

RATE_LIMIT_MARKERS = ("rate limit", "429", "quota exceeded")
NETWORK_MARKERS = ("network", "timeout", "connection", "econnreset", "enotfound")
SERVER_MARKERS = ("500", "502", "503", "504")
OVERLOAD_MARKERS = ("overloaded", "try again")
AUTH_MARKERS = ("unauthorized", "invalid api key", "401", "403")
BAD_REQUEST_MARKERS = ("400", "bad request", "invalid")

JITTER_FRACTION = 0.1


@dataclass(frozen=True)
class RetryConfig:
    """Backoff parameters. Delays are in seconds."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_enabled: bool = True


DEFAULT_RETRY_CONFIG = RetryConfig()
API_CALL_RETRY_CONFIG = RetryConfig(5, 2.0, 60.0, 2.5, True)
AZURE_OPENAI_RETRY_CONFIG = RetryConfig(3, 1.0, 30.0, 2.0, True)
FILE_OPERATION_RETRY_CONFIG = RetryConfig(3, 0.5, 5.0, 2.0, False)


@dataclass
class RetryAttemptRecord:
    """One failed attempt inside a single with_retry call."""

    attempt: int
    error: BaseException
    delay: float
    timestamp: float


@dataclass
class RetryResult:
    """Outcome of with_retry. Exactly one of result / error is meaningful."""

    success: bool
    attempts: int
    total_duration: float
    result: Any = None
    error: Optional[BaseException] = None
    history: List[RetryAttemptRecord] = field(default_factory=list)


def _error_text(error: BaseException) -> str:
    message = getattr(error, "message", None) or str(error)
    return message.lower()


def is_retryable_error(error: BaseException) -> bool:
    """
    Classify an error as transient (retry) or permanent (surface now).

    RetriableError is always retryable. Otherwise the message wording
    decides: rate-limit, network, 5xx and overload wording retry;
    authentication and malformed-request wording do not. Anything
    unrecognised is retried.
    """
    if isinstance(error, RetryCancelledError):
        return False
    if isinstance(error, RetriableError):
        return True

    message = _error_text(error)
    for markers in (RATE_LIMIT_MARKERS, NETWORK_MARKERS, SERVER_MARKERS, OVERLOAD_MARKERS):
        if any(marker in message for marker in markers):
            return True
    for markers in (AUTH_MARKERS, BAD_REQUEST_MARKERS):
        if any(marker in message for marker in markers):
            return False
    return True


class RetryExecutor:
    """
    Runs an async operation with exponential backoff.

    Listeners registered with add_listener receive
    ``on_retry_attempt(operation_name, attempt, max_retries, delay, error)``
    before every backoff sleep.
    """

    def __init__(
        self,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self._clock = clock
        self._listeners: List[Any] = []
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------ listeners

    def add_listener(self, listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit_retry_event(self, operation_name, attempt, max_retries, delay, error) -> None:
        for listener in list(self._listeners):
            try:
                listener.on_retry_attempt(operation_name, attempt, max_retries, delay, error)
            except Exception:  # pylint: disable=broad-exception-caught
                self.logger.exception("Retry listener %r failed", listener)

    # ------------------------------------------------------------------ delays

    def calculate_delay(
        self, attempt: int, config: RetryConfig, error: Optional[BaseException] = None
    ) -> float:
        """
        Delay before the next attempt.

        Args:
            attempt: 1-based number of the attempt that just failed.
            config: Backoff parameters.
            error: The failure, checked for an explicit retry-after hint.

        Returns:
            Seconds to sleep, never negative.
        """
        retry_after = getattr(error, "retry_after", None)
        if isinstance(error, RetriableError) and retry_after:
            return min(float(retry_after), config.max_delay)

        delay = config.base_delay * (config.backoff_multiplier ** (attempt - 1))
        delay = min(delay, config.max_delay)
        if config.jitter_enabled:
            jitter = delay * JITTER_FRACTION
            delay += self._rng.uniform(-jitter, jitter)
        return max(delay, 0.0)

    # ------------------------------------------------------------------ core loop

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[Any]],
        config: Optional[RetryConfig] = None,
        operation_name: str = "operation",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RetryResult:
        """
        Attempt ``operation`` up to ``max_retries + 1`` times.

        Non-retryable errors stop immediately. Setting ``cancel_event`` aborts
        a pending backoff sleep; the result then carries RetryCancelledError.

        Returns:
            RetryResult with success flag, value or final error, attempt
            count and total duration in seconds.
        """
        config = config or DEFAULT_RETRY_CONFIG
        started = self._clock()
        history: List[RetryAttemptRecord] = []
        attempts = 0

        def finish(success: bool, result=None, error=None) -> RetryResult:
            return RetryResult(
                success=success,
                attempts=attempts,
                total_duration=self._clock() - started,
                result=result,
                error=error,
                history=history,
            )

        if cancel_event is not None and cancel_event.is_set():
            return finish(False, error=RetryCancelledError(operation_name=operation_name))

        def wait(retry_state: RetryCallState) -> float:
            return self.calculate_delay(
                retry_state.attempt_number, config, retry_state.outcome.exception()
            )

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            delay = retry_state.next_action.sleep
            history.append(
                RetryAttemptRecord(
                    attempt=retry_state.attempt_number,
                    error=error,
                    delay=delay,
                    timestamp=time.time(),
                )
            )
            self.logger.warning(
                "%s attempt %d failed: %s. Retrying in %.2fs...",
                operation_name,
                retry_state.attempt_number,
                error,
                delay,
            )
            self._emit_retry_event(
                operation_name, retry_state.attempt_number, config.max_retries, delay, error
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(config.max_retries + 1),
            wait=wait,
            retry=retry_if_exception(is_retryable_error),
            before_sleep=before_sleep,
            sleep=functools.partial(self._cancellable_sleep, cancel_event, operation_name),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    self.logger.debug(
                        "%s - attempt %d/%d", operation_name, attempts, config.max_retries + 1
                    )
                    result = await operation()
        except RetryCancelledError as error:
            self.logger.info("%s cancelled after %d attempt(s)", operation_name, attempts)
            return finish(False, error=error)
        except Exception as error:  # pylint: disable=broad-exception-caught
            self.logger.error("%s failed permanently: %s", operation_name, error)
            return finish(False, error=error)

        self.logger.debug("%s succeeded on attempt %d", operation_name, attempts)
        return finish(True, result=result)

    async def _cancellable_sleep(
        self, cancel_event: Optional[asyncio.Event], operation_name: str, seconds: float
    ) -> None:
        if cancel_event is None:
            await self._sleep(seconds)
            return
        if cancel_event.is_set():
            raise RetryCancelledError(operation_name=operation_name)

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        if cancel_event.is_set():
            raise RetryCancelledError(operation_name=operation_name)

    # ------------------------------------------------------------------ presets

    async def _run_or_raise(self, operation, config, operation_name, cancel_event=None):
        outcome = await self.with_retry(operation, config, operation_name, cancel_event)
        if not outcome.success:
            raise outcome.error
        return outcome.result

    async def retry_api_call(
        self, api_call, operation_name="API call", cancel_event=None, config=None
    ):
        """API preset: 5 retries, 2s base, 60s cap, x2.5, jitter. Raises on failure."""
        return await self._run_or_raise(
            api_call, config or API_CALL_RETRY_CONFIG, operation_name, cancel_event
        )

    async def retry_azure_openai(
        self, api_call, operation_name="Azure OpenAI API call", cancel_event=None, config=None
    ):
        """Azure preset; rate-limit wording with "retry after N seconds" becomes RetriableError."""

        async def converted():
            try:
                return await api_call()
            except RetriableError:
                raise
            except Exception as error:
                message = str(error)
                if "rate limit" in message.lower() and not getattr(error, "retry_after", None):
                    hinted = RetriableError.from_http_response(429, message)
                    if hinted.retry_after:
                        raise RetriableError(
                            message, retry_after=hinted.retry_after, status=429
                        ) from error
                raise

        return await self._run_or_raise(
            converted, config or AZURE_OPENAI_RETRY_CONFIG, operation_name, cancel_event
        )

    async def retry_file_operation(self, file_operation, operation_name="File operation"):
        """File preset: 3 retries, 0.5s base, 5s cap, x2, no jitter. Raises on failure."""
        return await self._run_or_raise(
            file_operation, FILE_OPERATION_RETRY_CONFIG, operation_name
        )

    @staticmethod
    def get_retry_stats() -> dict:
        return {
            "recommended_config": replace(DEFAULT_RETRY_CONFIG),
            "common_retryable_errors": list(
                RATE_LIMIT_MARKERS + NETWORK_MARKERS + SERVER_MARKERS + OVERLOAD_MARKERS
            ),
            "non_retryable_errors": list(AUTH_MARKERS + BAD_REQUEST_MARKERS),
        }


def with_retry(
    config: Optional[RetryConfig] = None,
    operation_name: Optional[str] = None,
    executor: Optional[RetryExecutor] = None,
):
    """
    Decorator to retry an async function with backoff.

    The wrapped coroutine returns the value or raises the final error.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            runner = executor or RetryExecutor()
            return await runner._run_or_raise(
                lambda: func(*args, **kwargs),
                config or DEFAULT_RETRY_CONFIG,
                operation_name or func.__name__,
            )

        return wrapper

    return decorator
