"""
Streaming Logic
===============
Watches a model text stream for tool calls and stops reading as soon as a
complete one has arrived, so the tokens after it are never paid for.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any, AsyncIterable, Callable, Dict, List, Optional

from accesslint_core.grammar import OPENING_TAG, QUICK_TOOL_PATTERNS
from accesslint_core.utils.token_estimation import TokenEstimator

from .tool_parser import ToolCall, ToolCallParser


@dataclass(frozen=True)
class StreamingConfig:
    chunk_size: int = 50
    max_buffer_size: int = 8192
    tool_detection_enabled: bool = True
    early_interruption_enabled: bool = True


@dataclass
class StreamingResult:
    """
    Outcome of processing one response stream.

    Attributes:
        content: Prose left after tool blocks were stripped.
        tool_calls: Tool calls parsed from the buffered text.
        was_interrupted: Reading stopped early because a tool call completed.
        tokens_saved: Estimated tokens of the response that were never read.
        chunks_processed: Chunks consumed before stopping.
        interruption_point: Chunk number at which reading stopped, if it did.
        detected_tools: Tool names detected while streaming.
    """

    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    was_interrupted: bool = False
    tokens_saved: int = 0
    chunks_processed: int = 0
    interruption_point: Optional[int] = None
    detected_tools: List[str] = field(default_factory=list)


@dataclass
class _StreamState:
    buffer: str = ""
    total_tokens: int = 0
    chunks_processed: int = 0
    tool_detected: bool = False
    interrupted: bool = False
    interruption_point: Optional[int] = None
    detected_tools: List[str] = field(default_factory=list)


def split_into_chunks(content: str, chunk_size: int) -> List[str]:
    return [content[i : i + chunk_size] for i in range(0, len(content), chunk_size)]


class StreamingProcessor:
    """Stream reader with early tool-call interruption."""

    def __init__(
        self,
        parser: ToolCallParser,
        chunk_size: int = 50,
        max_buffer_size: int = 8192,
        tool_detection_enabled: bool = True,
        early_interruption_enabled: bool = True,
        estimator: Optional[TokenEstimator] = None,
    ):
        self.parser = parser
        self.config = StreamingConfig(
            chunk_size=chunk_size,
            max_buffer_size=max_buffer_size,
            tool_detection_enabled=tool_detection_enabled,
            early_interruption_enabled=early_interruption_enabled,
        )
        self.estimator = estimator or TokenEstimator()
        self.logger = logging.getLogger(__name__)

    def update_config(self, **changes):
        self.config = replace(self.config, **changes)
        self.logger.info("Streaming config updated: %s", asdict(self.config))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "config": asdict(self.config),
            "parser_stats": self.parser.get_parser_stats(),
            "recommended_settings": asdict(StreamingConfig()),
        }

    def _consume(self, state: _StreamState, chunk: str) -> Optional[str]:
        """Account for one chunk. Returns the tool name detected in it, if any."""
        state.chunks_processed += 1
        state.buffer += chunk
        state.total_tokens += self.estimator.estimate(chunk)

        detected = None
        if self.config.tool_detection_enabled and not state.tool_detected:
            detection = self.parser.parse_streaming_chunk(chunk)
            if detection.has_complete_tool_call and detection.tool_call_detected:
                state.tool_detected = True
                detected = detection.tool_call_detected
                state.detected_tools.append(detected)
                self.logger.info(
                    "Tool detected: %s at chunk %d",
                    detection.tool_call_detected,
                    state.chunks_processed,
                )
                if self.config.early_interruption_enabled:
                    state.interrupted = True
                    state.interruption_point = state.chunks_processed

        self._trim_buffer(state)
        return detected

    def _trim_buffer(self, state: _StreamState):
        """
        Drop leading prose once the buffer passes ``max_buffer_size``.

        Text from the first registered tool tag onward is never dropped, since
        the buffer is parsed for tool calls when the stream ends.
        """
        excess = len(state.buffer) - self.config.max_buffer_size
        if excess <= 0:
            return
        available = set(self.parser.get_available_tools())
        for match in OPENING_TAG.finditer(state.buffer):
            if match.group(1) in available:
                excess = min(excess, match.start())
                break
        if excess > 0:
            state.buffer = state.buffer[excess:]
            self.logger.debug("Buffer trimmed: removed %d characters", excess)

    def _finish(self, state: _StreamState, tokens_saved: int) -> StreamingResult:
        self.parser.clear_streaming_buffer()
        parsed = self.parser.parse_response(state.buffer)
        self.logger.info(
            "Streaming complete: %d chunks, %d tokens, %d tools, interrupted: %s, tokens saved: %d",
            state.chunks_processed,
            state.total_tokens,
            len(parsed.tool_calls),
            state.interrupted,
            tokens_saved,
        )
        return StreamingResult(
            content=parsed.text,
            tool_calls=parsed.tool_calls,
            was_interrupted=state.interrupted,
            tokens_saved=tokens_saved,
            chunks_processed=state.chunks_processed,
            interruption_point=state.interruption_point,
            detected_tools=state.detected_tools,
        )

    async def process_stream(
        self,
        stream: AsyncIterable[str],
        on_tool_detected: Optional[Callable[[str], None]] = None,
        on_interrupted: Optional[Callable[[str], None]] = None,
    ) -> StreamingResult:
        """
        Read ``stream`` until it ends or a complete tool call arrives.

        The unread remainder of an interrupted stream is unknown, so
        ``tokens_saved`` is 0 here; ``process_chunked`` can measure it.

        Raises:
            ToolCallParseError: The buffered text violates the tool protocol.
        """
        state = _StreamState()
        self.parser.clear_streaming_buffer()
        iterator = stream.__aiter__()

        try:
            async for chunk in iterator:
                tool_name = self._consume(state, chunk)
                if tool_name and on_tool_detected:
                    on_tool_detected(tool_name)
                if state.interrupted:
                    reason = f"Tool {tool_name} detected, interrupting stream"
                    self.logger.info(reason)
                    if on_interrupted:
                        on_interrupted(reason)
                    break
                if state.chunks_processed % 10 == 0:
                    await asyncio.sleep(0)
        except Exception as e:
            self.logger.error("Streaming error: %s", e)
            raise
        finally:
            aclose = getattr(iterator, "aclose", None)
            if state.interrupted and aclose is not None:
                await aclose()

        return self._finish(state, tokens_saved=0)

    async def process_chunked(
        self,
        content: str,
        on_chunk_processed: Optional[Callable[[str, float], None]] = None,
    ) -> StreamingResult:
        """
        Process an already complete response chunk by chunk.

        ``tokens_saved`` is the estimate for the chunks after the interruption.
        """
        chunks = split_into_chunks(content, self.config.chunk_size)
        state = _StreamState()
        self.parser.clear_streaming_buffer()

        for index, chunk in enumerate(chunks):
            self._consume(state, chunk)
            if state.interrupted:
                break
            if on_chunk_processed:
                on_chunk_processed(chunk, (index + 1) / len(chunks) * 100)
            if index % 5 == 0:
                await asyncio.sleep(0)

        tokens_saved = 0
        if state.interrupted:
            remaining = "".join(chunks[state.chunks_processed :])
            tokens_saved = self.estimator.estimate(remaining)
        return self._finish(state, tokens_saved)

    def quick_tool_detection(self, content: str) -> Dict[str, Any]:
        """
        Cheap scan for tool-call-looking text in foreign formats.

        Returns:
            ``{"has_tools", "tool_names", "confidence"}``; confidence is the
            share of pattern matches naming a registered tool.
        """
        available = set(self.parser.get_available_tools())
        found: List[str] = []
        total_matches = 0

        for pattern in QUICK_TOOL_PATTERNS:
            for match in pattern.finditer(content):
                total_matches += 1
                name = match.group(1)
                if name in available and name not in found:
                    found.append(name)

        confidence = min(1.0, len(found) / total_matches) if total_matches else 0.0
        return {"has_tools": bool(found), "tool_names": found, "confidence": confidence}
