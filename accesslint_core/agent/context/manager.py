#!/usr/bin/env python3
"""
Context Manager
===============

Keeps a conversation inside the model's context window.

Pipeline for ``manage_context``, each stage consuming the previous output:
1. token annotation
2. content optimisation (duplicate file reads, duplicate long content,
   compression of very long messages)
3. proactive range truncation
4. emergency truncation

The first user/assistant pair and every system message survive all stages.
All work is synchronous string manipulation; nothing here touches the network.
"""

import logging
from typing import List, Optional, Sequence, Set, Tuple

from accesslint_core.exceptions import ContextValidationError
from accesslint_core.grammar import (
    ERROR_SUMMARY,
    FUNCTION_RESULTS_SUMMARY,
    SUCCESS_SUMMARY,
    TOPIC_KEYWORDS,
    is_tool_result,
)
from accesslint_core.utils.token_estimation import TokenEstimator

from .file_tracker import FileReadTracker, duplicate_read_notice
from .message import Message
from .structs import CompressionResult, ContextStats, ManagedContextResult
from .window import (
    STRATEGY_HALF,
    STRATEGY_LAST_TWO,
    STRATEGY_NONE,
    STRATEGY_QUARTER,
    TRUNCATION_STRATEGIES,
    ContextWindowPolicy,
    aggressiveness_multiplier,
)

DEFAULT_MODEL_ID = "claude-sonnet-4-20250514"

# The first user/assistant pair is never removed
PRESERVED_PREFIX_LENGTH = 2

MIN_CONTENT_LENGTH_TO_DEDUPE = 200
MAX_CONTENT_LENGTH = 1000

REDUNDANCY_SIMILARITY_THRESHOLD = 0.8
SUMMARIZE_MIN_MESSAGES = 10
SUMMARY_KEEP_HEAD = 2
SUMMARY_KEEP_TAIL = 2

TRUNCATION_NOTICE = (
    "[CONTEXT TRUNCATED] {count} previous messages have been removed to manage context size.\n\n"
)
EMERGENCY_NOTICE = (
    "[EMERGENCY CONTEXT TRUNCATION] Context size exceeded safe limits. "
    "Most conversation history has been removed.\n\n"
)
SUMMARY_PREFIX = "[CONVERSATION SUMMARY] "


def content_hash(text: str) -> int:
    """32-bit rolling hash (h * 31 + c) used to spot repeated long content."""
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    return value


def compress_tool_result(content: str) -> str:
    """
    Reduce a tool result to its status line.

    Success and error markers keep the tool name and a short excerpt;
    ``<function_results>`` blocks keep their first 100 characters; anything
    else is head-truncated to 100 characters.
    """
    if "✓" in content:
        match = SUCCESS_SUMMARY.search(content)
        if match:
            excerpt = match.group(2)
            return f"✓ {match.group(1)}: {excerpt}{'...' if len(excerpt) >= 50 else ''}"

    if "✗" in content:
        match = ERROR_SUMMARY.search(content)
        if match:
            excerpt = match.group(2)
            return f"✗ {match.group(1)}: {excerpt}{'...' if len(excerpt) >= 100 else ''}"

    if "<function_results>" in content:
        match = FUNCTION_RESULTS_SUMMARY.search(content)
        if match:
            excerpt = match.group(1)
            ellipsis = "..." if len(excerpt) >= 100 else ""
            return f"<function_results>\n{excerpt}{ellipsis}\n</function_results>"

    return content[:100] + "..." if len(content) > 100 else content


def word_set_similarity(first: str, second: str) -> float:
    words_a = set(first.lower().split())
    words_b = set(second.lower().split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


class ContextManager:
    """
    Shrinks conversation history to fit the current model's window.

    One instance per conversation; it holds no conversation state of its own
    beyond the model id, so successive calls are independent.
    """

    def __init__(
        self,
        model_id: str = DEFAULT_MODEL_ID,
        window_policy: Optional[ContextWindowPolicy] = None,
        estimator: Optional[TokenEstimator] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.model_id = model_id
        self.window_policy = window_policy or ContextWindowPolicy()
        self.estimator = estimator or TokenEstimator()

    def update_model(self, model_id: str):
        """Switch the model used for window calculations."""
        self.model_id = model_id
        self.logger.info("Context manager updated for model: %s", model_id)

    # ------------------------------------------------------------------ tokens

    def _tokens_of(self, message: Message) -> int:
        if message.tokens is not None:
            return message.tokens
        return self.estimator.estimate(message.text)

    def _annotated(self, message: Message) -> Message:
        if message.tokens is not None:
            return message
        return message.with_tokens(self.estimator.estimate(message.text))

    def _replace_content(self, message: Message, text: str) -> Message:
        replaced = message.with_content(text)
        replaced.tokens = self.estimator.estimate(text)
        return replaced

    def calculate_total_tokens(self, messages: Sequence[Message]) -> int:
        return sum(self._tokens_of(message) for message in messages)

    # ------------------------------------------------------------------ main entry

    def manage_context(
        self, messages: Sequence[Message], aggressiveness: str = "moderate"
    ) -> ManagedContextResult:
        """
        Optimise and, when needed, truncate a conversation.

        Args:
            messages: Conversation history; never mutated.
            aggressiveness: conservative, moderate or aggressive.

        Returns:
            ManagedContextResult with the new message list. Stats compare
            against the input: totals describe the input, ``truncated_messages``
            and ``tokens_saved`` the difference.

        Raises:
            ContextValidationError: Unknown aggressiveness level.
        """
        aggressiveness_multiplier(aggressiveness)

        if not messages:
            return ManagedContextResult()

        annotated = [self._annotated(message) for message in messages]
        current_tokens = self.calculate_total_tokens(annotated)
        info = self.window_policy.window_info(self.model_id)

        self.logger.info(
            "Context analysis: %d messages, %d tokens (%d%% of %d)",
            len(annotated),
            current_tokens,
            round(current_tokens / info.context_window * 100),
            info.context_window,
        )

        optimized, file_optimizations = self._optimize_content(annotated)
        optimized_tokens = self.calculate_total_tokens(optimized)
        was_modified = (
            len(optimized) != len(annotated)
            or optimized_tokens != current_tokens
            or file_optimizations > 0
        )

        final = optimized
        if self.window_policy.should_truncate_proactively(
            optimized_tokens, self.model_id, aggressiveness
        ):
            strategy = self.window_policy.truncation_strategy(optimized_tokens, self.model_id)
            if strategy == STRATEGY_NONE:
                # Below the base threshold but over the scaled one
                strategy = STRATEGY_LAST_TWO
            truncated = self._truncate_messages(optimized, strategy)
            if len(truncated) != len(optimized):
                was_modified = True
                self.logger.info(
                    "Applied %s truncation: %d -> %d messages",
                    strategy,
                    len(optimized),
                    len(truncated),
                )
            final = truncated

        final_tokens = self.calculate_total_tokens(final)
        if final_tokens >= info.max_allowed_size:
            self.logger.warning(
                "Emergency truncation needed: %d >= %d", final_tokens, info.max_allowed_size
            )
            final = self._emergency_truncate(final)
            was_modified = True

        stats = ContextStats(
            total_messages=len(messages),
            total_tokens=current_tokens,
            truncated_messages=len(messages) - len(final),
            tokens_saved=max(0, current_tokens - self.calculate_total_tokens(final)),
        )
        return ManagedContextResult(messages=final, was_modified=was_modified, stats=stats)

    def needs_management(self, messages: Sequence[Message]) -> bool:
        """True when the conversation already crosses the conservative threshold."""
        total = self.calculate_total_tokens(messages)
        return self.window_policy.should_truncate_proactively(
            total, self.model_id, "conservative"
        )

    def get_context_stats(self, messages: Sequence[Message]) -> ContextStats:
        return ContextStats(
            total_messages=len(messages),
            total_tokens=self.calculate_total_tokens(messages),
        )

    # ------------------------------------------------------------------ optimisation

    def _is_preserved(self, index: int, message: Message) -> bool:
        return message.role == "system" or index < PRESERVED_PREFIX_LENGTH

    def _optimize_content(self, messages: List[Message]) -> Tuple[List[Message], int]:
        """Returns the optimised list and how many file reads were collapsed."""
        optimized: List[Message] = []
        seen_hashes: Set[int] = set()
        tracker = FileReadTracker()
        file_optimizations = 0

        for index, message in enumerate(messages):
            text = message.text

            if self._is_preserved(index, message):
                # Preserved reads still anchor later duplicates
                tracker.observe(index, text)
                optimized.append(message)
                continue

            content = text
            duplicate = tracker.observe(index, text)
            if duplicate is not None:
                content = duplicate_read_notice(
                    duplicate.file_path, duplicate.original_index, duplicate.duplicate_index
                )
                file_optimizations += 1

            if len(content) > MIN_CONTENT_LENGTH_TO_DEDUPE:
                digest = content_hash(content)
                if digest in seen_hashes:
                    self.logger.info("Skipped duplicate content (%d chars)", len(content))
                    continue
                seen_hashes.add(digest)

            if len(content) > MAX_CONTENT_LENGTH:
                content = compress_tool_result(content)

            if content != text:
                optimized.append(self._replace_content(message, content))
            else:
                optimized.append(message)

        if file_optimizations:
            self.logger.info("Applied %d file read optimizations", file_optimizations)
        return optimized, file_optimizations

    def optimize_duplicate_file_reads(
        self, messages: Sequence[Message], start_from_index: int = 0
    ) -> Tuple[List[Message], int, int]:
        """
        Replace repeated reads of unchanged files with a reference notice.

        Returns:
            ``(messages, optimizations_applied, tokens_saved)``
        """
        original_tokens = self.calculate_total_tokens(messages)
        tracker = FileReadTracker()
        result: List[Message] = []
        applied = 0

        for index, message in enumerate(messages):
            if index < start_from_index:
                result.append(message)
                continue
            duplicate = tracker.observe(index, message.text)
            if duplicate is None:
                result.append(message)
                continue
            notice = duplicate_read_notice(duplicate.file_path, duplicate.original_index, index)
            result.append(self._replace_content(message, notice))
            applied += 1

        tokens_saved = max(0, original_tokens - self.calculate_total_tokens(result))
        return result, applied, tokens_saved

    # ------------------------------------------------------------------ truncation

    def get_truncation_range(
        self,
        messages: Sequence[Message],
        current_deleted_range: Optional[Tuple[int, int]] = None,
        strategy: str = STRATEGY_HALF,
    ) -> Tuple[int, int]:
        """
        Inclusive ``(start, end)`` range of messages to drop.

        The range starts right after the preserved prefix (or after a range
        already deleted) so the newest messages survive. Counts are even so a
        user/assistant pair is never split. ``start > end`` or
        ``start >= len(messages)`` means nothing to remove.

        Raises:
            ContextValidationError: Unknown strategy.
        """
        if strategy not in TRUNCATION_STRATEGIES:
            raise ContextValidationError(
                f"Unknown truncation strategy '{strategy}'",
                validation_type="strategy",
                invalid_value=strategy,
            )

        total = len(messages)
        start_of_rest = (
            current_deleted_range[1] + 1 if current_deleted_range else PRESERVED_PREFIX_LENGTH
        )
        start_of_rest = max(start_of_rest, PRESERVED_PREFIX_LENGTH)
        remaining = max(0, total - start_of_rest)

        if strategy == STRATEGY_HALF:
            count = (remaining // 4) * 2
        elif strategy == STRATEGY_QUARTER:
            count = int(remaining * 3 / 4 / 2) * 2
        elif strategy == STRATEGY_LAST_TWO:
            count = max(0, remaining - 2)
        else:
            return total, total

        return start_of_rest, start_of_rest + count - 1

    def _truncate_messages(self, messages: List[Message], strategy: str) -> List[Message]:
        if len(messages) <= PRESERVED_PREFIX_LENGTH:
            return messages

        start, end = self.get_truncation_range(messages, None, strategy)
        if start >= len(messages) or end < start:
            return messages

        result = messages[:start] + messages[end + 1 :]
        assert result[:PRESERVED_PREFIX_LENGTH] == messages[:PRESERVED_PREFIX_LENGTH]

        removed = len(messages) - len(result)
        if len(result) >= 2 and result[1].role == "assistant":
            notice = TRUNCATION_NOTICE.format(count=removed)
            result[1] = self._replace_content(result[1], notice + result[1].text)
        return result

    def _emergency_truncate(self, messages: List[Message]) -> List[Message]:
        """Keep system messages, the preserved pair and the last two other messages."""
        non_system = [i for i, m in enumerate(messages) if m.role != "system"]
        keep = {i for i, m in enumerate(messages) if m.role == "system"}
        keep.update(range(min(PRESERVED_PREFIX_LENGTH, len(messages))))
        keep.update(non_system[-2:])

        result = [messages[i] for i in sorted(keep)]
        if result and not result[0].text.startswith(EMERGENCY_NOTICE):
            result[0] = self._replace_content(result[0], EMERGENCY_NOTICE + result[0].text)
        return result

    # ------------------------------------------------------------------ heavy compression

    def compress_context(self, messages: Sequence[Message]) -> CompressionResult:
        """
        Heavier, standalone compression for tool-result-heavy conversations.

        Assistant tool results are reduced to their status line, consecutive
        same-role messages that are over 80% similar are dropped, and
        conversations still longer than ten messages have their middle
        replaced by one synthesized system summary.
        """
        original_tokens = self.calculate_total_tokens(messages)
        preserved: List[str] = []

        if any(m.role == "system" for m in messages):
            preserved.append("system_messages")
        if any(m.role == "user" for m in messages):
            preserved.append("last_user_message")

        compressed: List[Message] = []
        for message in messages:
            text = message.text
            if message.role == "assistant" and is_tool_result(text):
                compressed.append(self._replace_content(message, compress_tool_result(text)))
            else:
                compressed.append(message)

        compressed = self._remove_redundant_messages(compressed)
        preserved.append("redundancy_removal")

        if len(compressed) > SUMMARIZE_MIN_MESSAGES:
            compressed = self._summarize_middle(compressed)
            preserved.append("middle_summarization")

        final_tokens = self.calculate_total_tokens(compressed)
        ratio = final_tokens / original_tokens if original_tokens > 0 else 1.0
        return CompressionResult(
            messages=compressed, compression_ratio=ratio, preserved_elements=preserved
        )

    def _remove_redundant_messages(self, messages: List[Message]) -> List[Message]:
        result: List[Message] = []
        for message in messages:
            if result:
                last = result[-1]
                if (
                    last.role == message.role
                    and word_set_similarity(last.text, message.text)
                    > REDUNDANCY_SIMILARITY_THRESHOLD
                ):
                    continue
            result.append(message)
        return result

    def _summarize_middle(self, messages: List[Message]) -> List[Message]:
        head = messages[:SUMMARY_KEEP_HEAD]
        middle = messages[SUMMARY_KEEP_HEAD:-SUMMARY_KEEP_TAIL]
        tail = messages[-SUMMARY_KEEP_TAIL:]

        text = SUMMARY_PREFIX + self._conversation_summary(middle)
        summary = Message(role="system", content=text, tokens=self.estimator.estimate(text))
        return head + [summary] + tail

    def _conversation_summary(self, messages: Sequence[Message]) -> str:
        tool_calls = sum(1 for m in messages if is_tool_result(m.text))
        users = sum(1 for m in messages if m.role == "user")
        assistants = sum(1 for m in messages if m.role == "assistant")

        summary = f"Previous conversation: {users} user messages, {assistants} assistant responses"
        if tool_calls:
            summary += f", {tool_calls} tool executions"

        combined = " ".join(m.text for m in messages).lower()
        topics = [
            topic for topic, keywords in TOPIC_KEYWORDS if any(k in combined for k in keywords)
        ]
        if topics:
            summary += f". Topics: {', '.join(topics)}"
        return summary + "."

