#!/usr/bin/env python3
"""
Base Chat Client Interface
==========================

Abstract base class for the provider chat clients. It runs the request
pipeline once for every vendor:

context management -> token estimate -> rate limit -> retry-wrapped send ->
usage tracking -> tool-call parsing.

Subclasses only build the vendor payload, post it and read the reply.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import aiohttp

from accesslint_core.agent.context import ContextManager, ContextStats, Message
from accesslint_core.agent.logic import ToolCall, ToolCallParser
from accesslint_core.agent.logic.tool_parser import STRICT_FORMAT_EXAMPLE, ToolDefinition
from accesslint_core.agent.usage import StreamingTokenInfo, TokenTracker
from accesslint_core.exceptions import (
    EmptyResponseError,
    ModelRateLimitError,
    ModelTimeoutError,
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderRequestError,
    ProviderResponseError,
    ProviderServiceError,
    RateLimitExceededError,
)
from accesslint_core.utils.retry import RetryConfig, RetryExecutor

DEFAULT_MAX_OUTPUT_TOKENS = 4096
MIN_ESTIMATED_OUTPUT_TOKENS = 500
OUTPUT_ESTIMATE_RATIO = 0.5
DEFAULT_TEMPERATURE = 0.7

CHAT_AGGRESSIVENESS = "moderate"
TOOL_AGGRESSIVENESS = "aggressive"


@dataclass
class ProviderReply:
    """What one vendor call returned; token counts are None when not reported."""

    content: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatResponse:
    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    stream_info: Optional[StreamingTokenInfo] = None
    context_stats: Optional[ContextStats] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


def estimate_output_tokens(input_tokens: int) -> int:
    """Conservative output budget used for the pre-flight rate-limit check."""
    return int(
        min(
            DEFAULT_MAX_OUTPUT_TOKENS,
            max(MIN_ESTIMATED_OUTPUT_TOKENS, input_tokens * OUTPUT_ESTIMATE_RATIO),
        )
    )


def render_tool_catalog(tools: Sequence[ToolDefinition]) -> str:
    """System-prompt section describing the XML tool protocol and the tools."""
    lines = ["You can use the following tools:"]
    for tool in tools:
        lines.append(f"\n## {tool.name}")
        if tool.description:
            lines.append(tool.description)
        lines.append(f"Input schema: {json.dumps(tool.input_schema)}")
    lines.append(STRICT_FORMAT_EXAMPLE)
    return "\n".join(lines)


class BaseChatClient(ABC):
    """
    Abstract base class that defines the contract for all chat providers.

    One client per conversation: history, parser mistakes and the session's
    tracker are instance state.

    Args:
        model_name: Vendor model or deployment name.
        api_key: Credential sent with every request; never logged.
        tracker: Usage tracker; its limiter for this provider gates requests.
        context_manager: Conversation shrinker; built for ``model_name`` if omitted.
        retry_executor: Backoff runner; a default executor if omitted.
        retry_config: Backoff parameters; the API-call preset if omitted.
        parser: Tool-call parser used by ``send_message_with_tools``.
        system_prompt: Prepended to every request.
        timeout: Total HTTP timeout in seconds.
        session: aiohttp session (or compatible object) to post with; one is
            created lazily and owned by the client when omitted.
        sleep: Coroutine used while waiting for rate-limit capacity.
    """

    provider_name = "provider"
    display_name = "Provider"

    def __init__(
        self,
        model_name: str,
        api_key: str,
        tracker: TokenTracker,
        context_manager: Optional[ContextManager] = None,
        retry_executor: Optional[RetryExecutor] = None,
        retry_config: Optional[RetryConfig] = None,
        parser: Optional[ToolCallParser] = None,
        system_prompt: Optional[str] = None,
        timeout: float = 120.0,
        session: Optional[aiohttp.ClientSession] = None,
        chat_aggressiveness: str = CHAT_AGGRESSIVENESS,
        sleep=asyncio.sleep,
    ):
        self.model_name = model_name
        self.api_key = api_key
        self.tracker = tracker
        self.context_manager = context_manager or ContextManager(model_name)
        self.retry_executor = retry_executor or RetryExecutor()
        self.retry_config = retry_config
        self.parser = parser or ToolCallParser()
        self.system_prompt = system_prompt
        self.timeout = timeout
        self.chat_aggressiveness = chat_aggressiveness
        self._sleep = sleep
        self._session = session
        self._owns_session = session is None
        self._history: List[Message] = []
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------ vendor hooks

    @abstractmethod
    def _prepare_payload(
        self, messages: List[Message], system_prompt: Optional[str]
    ) -> Dict[str, Any]:
        """Convert the conversation into the vendor request body."""
        pass

    @abstractmethod
    def _endpoint(self) -> str:
        pass

    @abstractmethod
    def _headers(self) -> Dict[str, str]:
        pass

    def _params(self) -> Optional[Dict[str, str]]:
        return None

    @abstractmethod
    def _extract_reply(self, data: Dict[str, Any]) -> ProviderReply:
        """Read text and usage from the vendor response body."""
        pass

    async def _call_with_retry(self, operation, cancel_event: Optional[asyncio.Event]):
        return await self.retry_executor.retry_api_call(
            operation, f"{self.display_name} API call", cancel_event, self.retry_config
        )

    # ------------------------------------------------------------------ HTTP

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is None or not self._owns_session:
            return
        if not self._session.closed:
            await self._session.close()
        self._session = None

    async def _send(self, messages: List[Message], system_prompt: Optional[str]) -> ProviderReply:
        session = await self._get_session()
        payload = self._prepare_payload(messages, system_prompt)

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "%s request: %d messages, model %s",
                self.display_name,
                len(messages),
                self.model_name,
            )

        try:
            async with session.post(
                self._endpoint(), json=payload, headers=self._headers(), params=self._params()
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    self._raise_for_status(response.status, error_text, response.headers)
                data = await response.json()
        except asyncio.TimeoutError as e:
            raise ModelTimeoutError(
                message=f"{self.display_name} request timeout after {self.timeout}s",
                timeout_seconds=self.timeout,
                details={"provider": self.provider_name, "model": self.model_name},
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderConnectionError(
                f"{self.display_name} connection error: {e}",
                provider_name=self.provider_name,
                model_name=self.model_name,
                original_error=e,
            ) from e

        if not isinstance(data, dict):
            raise ProviderResponseError(
                f"{self.display_name} returned a non-object response",
                provider_name=self.provider_name,
                model_name=self.model_name,
            )
        return self._extract_reply(data)

    def _raise_for_status(self, status: int, error_text: str, headers: Mapping[str, str]):
        """
        Map an HTTP failure onto the exception hierarchy.

        Messages keep the status code so retry classification sees it.
        """
        if status in (401, 403):
            raise ProviderAuthenticationError(
                f"{self.display_name} authentication failed ({status}): {error_text}",
                provider_name=self.provider_name,
                model_name=self.model_name,
            )
        if status == 429:
            raise ModelRateLimitError.from_http_response(
                status, error_text, headers, provider_name=self.display_name
            )
        if status >= 500:
            raise ProviderServiceError(
                f"{self.display_name} server error ({status}): {error_text}",
                status=status,
                provider_name=self.provider_name,
                model_name=self.model_name,
            )
        raise ProviderRequestError(
            f"{self.display_name} bad request ({status}): {error_text}",
            status=status,
            provider_name=self.provider_name,
            model_name=self.model_name,
        )

    # ------------------------------------------------------------------ conversation

    def get_history(self) -> List[Message]:
        return list(self._history)

    def clear_history(self):
        self._history = []
        self.logger.info("%s conversation cleared", self.display_name)

    def _system_prompt_for(self, tools: Optional[Sequence[ToolDefinition]]) -> Optional[str]:
        parts = [self.system_prompt] if self.system_prompt else []
        if tools:
            parts.append(render_tool_catalog(tools))
        return "\n\n".join(parts) or None

    async def send_message(
        self,
        message: str,
        use_history: bool = True,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChatResponse:
        """
        Send a chat message and return the model's text.

        Raises:
            RateLimitExceededError: The minute quota stayed exhausted.
            ProviderAuthenticationError: Credentials were rejected.
            EmptyResponseError: The model returned no text.
        """
        return await self._exchange(
            message, self.chat_aggressiveness, None, use_history, cancel_event
        )

    async def send_message_with_tools(
        self,
        message: str,
        tools: Sequence[Any],
        use_history: bool = True,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChatResponse:
        """
        Send an agent turn and parse XML tool calls out of the reply.

        Context is managed aggressively. The complete reply is parsed, so
        every tool call comes back in order of appearance.

        Raises:
            ToolCallParseError: The reply violated the tool protocol.
            MaxMistakesError: Too many protocol violations in this session.
        """
        self.parser.update_tools(tools)
        definitions = [
            tool if isinstance(tool, ToolDefinition) else ToolDefinition.from_dict(tool)
            for tool in tools
        ]
        return await self._exchange(
            message, TOOL_AGGRESSIVENESS, definitions, use_history, cancel_event
        )

    async def _exchange(
        self,
        message: str,
        aggressiveness: str,
        tools: Optional[List[ToolDefinition]],
        use_history: bool,
        cancel_event: Optional[asyncio.Event],
    ) -> ChatResponse:
        history = list(self._history) if use_history else []
        context_stats = None

        if history:
            managed = self.context_manager.manage_context(history, aggressiveness)
            context_stats = managed.stats
            if managed.was_modified:
                history = managed.messages
                self._history = list(managed.messages)
                self.logger.info(
                    "Context optimized: %d messages removed, %d tokens saved",
                    managed.stats.truncated_messages,
                    managed.stats.tokens_saved,
                )

        user_message = Message(role="user", content=message)
        outgoing = history + [user_message]
        system_prompt = self._system_prompt_for(tools)

        input_text = "\n".join(m.text for m in outgoing)
        if system_prompt:
            input_text = f"{system_prompt}\n{input_text}"
        estimated_input = self.tracker.estimate_token_count(input_text)
        estimated_total = estimated_input + estimate_output_tokens(estimated_input)

        limiter = self.tracker.limiter_for(self.provider_name)
        if limiter is not None and not await limiter.wait_for_capacity(
            estimated_total, sleep=self._sleep
        ):
            raise RateLimitExceededError(
                "Rate limit exceeded and maximum wait attempts reached",
                wait_time=limiter.get_window().time_until_reset,
                provider_name=self.provider_name,
                model_name=self.model_name,
            )

        # History only changes once the whole exchange has succeeded
        self.tracker.start_stream_tracking(estimated_input)
        try:
            reply = await self._call_with_retry(
                lambda: self._send(outgoing, system_prompt), cancel_event
            )
            if not reply.content.strip():
                raise EmptyResponseError(
                    f"{self.display_name} returned an empty response",
                    details={"provider": self.provider_name, "model": self.model_name},
                )

            input_tokens = reply.input_tokens or estimated_input
            output_tokens = reply.output_tokens or self.tracker.estimate_token_count(
                reply.content
            )
            self.tracker.update_stream_tokens(output_tokens)
            self.tracker.track_api_usage(
                input_tokens, output_tokens, self.model_name, self.provider_name
            )

            text = reply.content
            tool_calls: List[ToolCall] = []
            if tools:
                parsed = self.parser.parse_response(reply.content)
                text = parsed.text
                tool_calls = parsed.tool_calls
        finally:
            stream_info = self.tracker.complete_stream()

        if use_history:
            if tool_calls:
                history_text = "[Tool: " + ", ".join(call.name for call in tool_calls) + "]"
            else:
                history_text = text
            self._history.append(user_message)
            self._history.append(Message(role="assistant", content=history_text))

        return ChatResponse(
            text=text,
            tool_calls=tool_calls,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            stream_info=stream_info,
            context_stats=context_stats,
        )

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "model_name": self.model_name,
            "provider_name": self.provider_name,
            "timeout": self.timeout,
            "history_length": len(self._history),
        }
