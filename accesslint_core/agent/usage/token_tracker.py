"""
Token Usage Tracking
====================
Append-only log of API usage with cost, per-provider rate limiting,
aggregate statistics and streaming bookkeeping.

Usage history lives in a caller-supplied ``UsageStore`` as a list of
JSON objects with ISO timestamps. Storage failures are logged; the tracker
keeps working from memory.
"""

import csv
import io
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from accesslint_core.config.model_tables import PricingTable
from accesslint_core.exceptions import UsageStoreError
from accesslint_core.utils.token_estimation import TokenEstimator

from .rate_limiter import RateLimitDecision, RateLimiter, RateLimitWindow
from .store import UsageStore

HISTORY_KEY = "tokenUsageHistory"
SESSION_KEY = "currentSessionId"

RATE_LIMITED_PROVIDER = "anthropic"
DEFAULT_TOKENS_PER_MINUTE = 30_000
DEFAULT_RETENTION_DAYS = 30
CLEANUP_INTERVAL_SECONDS = 10

TOOL_RESULT_MAX_LENGTH = 800
TOOL_RESULT_HEAD_LENGTH = 600
TOOL_RESULT_TAIL_LENGTH = 100
FILE_TRUNCATION_MARKER = (
    "\n\n...[CONTENT TRUNCATED - Use limit/offset parameters to read specific sections]...\n\n"
)

CSV_HEADERS = [
    "Timestamp",
    "Provider",
    "Model",
    "Input Tokens",
    "Output Tokens",
    "Total Tokens",
    "Cost",
    "Session ID",
]


class UsageRecord(BaseModel):
    """One completed API call. Stored with camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost: float
    model: str
    provider: str
    timestamp: datetime
    session_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


@dataclass
class ApiUsageStats:
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    request_count: int = 0
    sessions_count: int = 0
    average_request_tokens: int = 0
    last_reset: Optional[datetime] = None


@dataclass
class StreamingTokenInfo:
    """Diagnostics for one response stream; never affects rate limiting."""

    estimated_tokens: int = 0
    actual_tokens_so_far: int = 0
    stream_interrupted: bool = False
    tool_detected: bool = False
    interruption_reason: Optional[str] = None


class TokenTracker:
    """
    Records usage per API call and answers quota and cost questions.

    Args:
        store: Persistence for history and the current session id.
        pricing: Price table; defaults to the built-in one.
        rate_limits: Provider name to limiter. Providers without an entry
            are never rate limited. Defaults to a 30k tokens/minute limiter
            for Anthropic.
        clock: Seconds since the epoch.
        retention_days: History older than this is purged.
    """

    def __init__(
        self,
        store: UsageStore,
        pricing: Optional[PricingTable] = None,
        rate_limits: Optional[Dict[str, RateLimiter]] = None,
        clock: Callable[[], float] = time.time,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        estimator: Optional[TokenEstimator] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.pricing = pricing or PricingTable()
        self.clock = clock
        self.retention_days = retention_days
        self.estimator = estimator or TokenEstimator()
        if rate_limits is None:
            rate_limits = {
                RATE_LIMITED_PROVIDER: RateLimiter(DEFAULT_TOKENS_PER_MINUTE, clock=clock)
            }
        self.rate_limits = rate_limits

        self.usage_history: List[UsageRecord] = []
        self.current_session_id: Optional[str] = None
        self._streaming_info: Optional[StreamingTokenInfo] = None
        self._last_cleanup = self.clock()

        self._load_usage_history()
        self.cleanup_old_data()
        self.start_new_session()

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    # ------------------------------------------------------------------ sessions

    def start_new_session(self) -> str:
        self.current_session_id = str(int(self.clock() * 1000))
        try:
            self.store.update(SESSION_KEY, self.current_session_id)
        except UsageStoreError as e:
            self.logger.warning("Failed to save session id: %s", e)
        self.logger.info("New chat session started: %s", self.current_session_id)
        return self.current_session_id

    # ------------------------------------------------------------------ recording

    def estimate_token_count(self, text: str) -> int:
        return self.estimator.estimate(text)

    def track_api_usage(
        self,
        input_tokens: int,
        output_tokens: int,
        model: str,
        provider: str,
        session_id: Optional[str] = None,
    ) -> UsageRecord:
        """
        Append one usage record and charge the provider's rate limiter.

        Returns:
            The stored UsageRecord.
        """
        total = input_tokens + output_tokens
        cost = self.pricing.cost(input_tokens, output_tokens, model, provider)
        record = UsageRecord(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total,
            cost=cost,
            model=model,
            provider=provider,
            timestamp=self._now(),
            session_id=session_id or self.current_session_id,
        )
        self.usage_history.append(record)
        self._save_usage_history()

        limiter = self.rate_limits.get(provider)
        if limiter is not None:
            limiter.record_usage(total)

        self.logger.info(
            "API usage tracked: %d in + %d out = %d tokens, $%.4f (%s/%s)",
            input_tokens,
            output_tokens,
            total,
            cost,
            provider,
            model,
        )
        self._maybe_cleanup()
        return record

    def track_estimated_usage(
        self,
        input_text: str,
        output_text: str,
        model: str,
        provider: str,
        session_id: Optional[str] = None,
    ) -> UsageRecord:
        """Track usage when the provider did not report token counts."""
        return self.track_api_usage(
            self.estimate_token_count(input_text),
            self.estimate_token_count(output_text),
            model,
            provider,
            session_id,
        )

    # ------------------------------------------------------------------ rate limits

    def limiter_for(self, provider: str) -> Optional[RateLimiter]:
        return self.rate_limits.get(provider)

    def check_rate_limit(self, estimated_tokens: int, provider: str) -> RateLimitDecision:
        limiter = self.rate_limits.get(provider)
        if limiter is None:
            return RateLimitDecision(allowed=True)
        return limiter.check_rate_limit(estimated_tokens)

    def get_rate_limit_info(self, provider: str = RATE_LIMITED_PROVIDER) -> Optional[RateLimitWindow]:
        limiter = self.rate_limits.get(provider)
        return limiter.get_window() if limiter else None

    # ------------------------------------------------------------------ statistics

    def get_current_session_stats(self) -> ApiUsageStats:
        return self._calculate_stats(
            [u for u in self.usage_history if u.session_id == self.current_session_id]
        )

    def get_overall_stats(self) -> ApiUsageStats:
        """Statistics for the last 24 hours."""
        since = self._now() - timedelta(hours=24)
        return self._calculate_stats([u for u in self.usage_history if u.timestamp >= since])

    def get_stats_by_provider(self, provider: str) -> ApiUsageStats:
        return self._calculate_stats([u for u in self.usage_history if u.provider == provider])

    def _calculate_stats(self, records: List[UsageRecord]) -> ApiUsageStats:
        if not records:
            return ApiUsageStats(last_reset=self._now())

        total_input = sum(r.input_tokens for r in records)
        total_output = sum(r.output_tokens for r in records)
        total = total_input + total_output
        sessions = {r.session_id for r in records if r.session_id}
        return ApiUsageStats(
            total_input_tokens=total_input,
            total_output_tokens=total_output,
            total_tokens=total,
            total_cost=sum(r.cost for r in records),
            request_count=len(records),
            sessions_count=len(sessions),
            average_request_tokens=round(total / len(records)),
            last_reset=records[0].timestamp,
        )

    def get_formatted_summary(self) -> str:
        session = self.get_current_session_stats()
        overall = self.get_overall_stats()
        lines = [
            "Token Usage Summary",
            "",
            "Current Session:",
            f"  Input: {session.total_input_tokens:,} tokens",
            f"  Output: {session.total_output_tokens:,} tokens",
            f"  Total: {session.total_tokens:,} tokens",
            f"  Cost: ${session.total_cost:.4f}",
            f"  Requests: {session.request_count}",
            "",
            "Last 24 Hours:",
            f"  Total: {overall.total_tokens:,} tokens",
            f"  Cost: ${overall.total_cost:.4f}",
            f"  Requests: {overall.request_count}",
            f"  Sessions: {overall.sessions_count}",
            f"  Avg per request: {overall.average_request_tokens} tokens",
        ]
        for provider, limiter in self.rate_limits.items():
            window = limiter.get_window()
            status = "EXCEEDED" if window.is_limit_exceeded else "OK"
            lines += [
                "",
                f"Rate Limiting ({provider}):",
                f"  Used this minute: {window.current_minute_tokens:,}/{window.tokens_per_minute:,}",
                f"  Status: {status}",
                f"  Reset in: {window.time_until_reset}s",
            ]
        return "\n".join(lines)

    # ------------------------------------------------------------------ history management

    def reset_stats(self):
        self.usage_history = []
        self._save_usage_history()
        self.logger.info("Token usage statistics reset")

    def export_usage_data(self) -> str:
        """Usage history as CSV text, header first, cost to 6 decimals."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for record in self.usage_history:
            writer.writerow(
                [
                    record.timestamp.isoformat(),
                    record.provider,
                    record.model,
                    record.input_tokens,
                    record.output_tokens,
                    record.total_tokens,
                    f"{record.cost:.6f}",
                    record.session_id or "",
                ]
            )
        return buffer.getvalue().rstrip("\n")

    def cleanup_old_data(self) -> int:
        """Drop records older than the retention period; returns how many."""
        cutoff = self._now() - timedelta(days=self.retention_days)
        before = len(self.usage_history)
        self.usage_history = [u for u in self.usage_history if u.timestamp >= cutoff]
        removed = before - len(self.usage_history)
        self._last_cleanup = self.clock()

        if removed:
            self._save_usage_history()
            self.logger.info("Cleaned up %d old usage records", removed)
        return removed

    def _maybe_cleanup(self):
        if self.clock() - self._last_cleanup >= CLEANUP_INTERVAL_SECONDS:
            self.cleanup_old_data()

    def _load_usage_history(self):
        try:
            stored = self.store.get(HISTORY_KEY, [])
        except UsageStoreError as e:
            self.logger.warning("Failed to load usage history: %s", e)
            self.usage_history = []
            return

        records = []
        for item in stored or []:
            try:
                records.append(UsageRecord.model_validate(item))
            except ValidationError as e:
                self.logger.warning("Skipping invalid usage record: %s", e)
        self.usage_history = records
        self.logger.info("Loaded %d usage records from storage", len(records))

    def _save_usage_history(self):
        payload = [r.model_dump(mode="json", by_alias=True) for r in self.usage_history]
        try:
            self.store.update(HISTORY_KEY, payload)
        except UsageStoreError as e:
            self.logger.warning("Failed to save usage history: %s", e)

    # ------------------------------------------------------------------ streaming

    def start_stream_tracking(self, estimated_tokens: int):
        self._streaming_info = StreamingTokenInfo(estimated_tokens=estimated_tokens)

    def update_stream_tokens(self, tokens: int):
        if self._streaming_info:
            self._streaming_info.actual_tokens_so_far += tokens

    def interrupt_stream_for_tool(self, reason: str = "Tool use detected") -> StreamingTokenInfo:
        if self._streaming_info is None:
            return StreamingTokenInfo(
                stream_interrupted=True, tool_detected=True, interruption_reason=reason
            )
        self._streaming_info.stream_interrupted = True
        self._streaming_info.tool_detected = True
        self._streaming_info.interruption_reason = reason
        self.logger.info("Stream interrupted: %s", reason)
        return self._streaming_info

    def get_stream_info(self) -> Optional[StreamingTokenInfo]:
        return self._streaming_info

    def complete_stream(self) -> Optional[StreamingTokenInfo]:
        info = self._streaming_info
        self._streaming_info = None
        return info

    # ------------------------------------------------------------------ tool results

    @staticmethod
    def format_tool_result(
        tool_name: str, result: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Compress a tool result into a token-cheap string.

        Args:
            tool_name: Name of the executed tool.
            result: ``{"success", "output" | "content" | "result" | "error"}``;
                ``file_path`` marks file content.
            metadata: Line-window info for file reads; defaults to
                ``result["metadata"]``.

        Returns:
            ``[✓] name:`` or ``[✗] name:`` followed by the (truncated) output.
        """
        if not result.get("success", True):
            return f"[✗] {tool_name}: {result.get('error') or 'Failed'}"

        output: Any = ""
        for key in ("content", "output", "result"):
            if result.get(key) is not None:
                output = result[key]
                break
        if not isinstance(output, str):
            output = json.dumps(output)

        info = ""
        meta = metadata if metadata is not None else result.get("metadata")
        if meta and meta.get("total_lines") and meta.get("lines_shown"):
            info = f"\n[File info: {meta['lines_shown']}/{meta['total_lines']} lines shown"
            if meta.get("start_line") and meta.get("end_line"):
                info += f", lines {meta['start_line']}-{meta['end_line']}"
            if meta.get("has_more_content"):
                info += ", more content available"
            info += "]"

        if len(output) > TOOL_RESULT_MAX_LENGTH:
            if tool_name == "read_file" or result.get("file_path"):
                output = (
                    output[:TOOL_RESULT_HEAD_LENGTH]
                    + FILE_TRUNCATION_MARKER
                    + output[-TOOL_RESULT_TAIL_LENGTH:]
                )
            else:
                output = output[:TOOL_RESULT_MAX_LENGTH] + "...[truncated]"

        return f"[✓] {tool_name}:{info}\n{output}"
