#!/usr/bin/env python3
"""
Anthropic Chat Client Provider
==============================

Messages API over aiohttp, with prompt caching: up to four
``cache_control: ephemeral`` breakpoints per request.
"""

from typing import Any, Dict, List, Optional

from accesslint_core.agent.base_chat_client import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_TEMPERATURE,
    BaseChatClient,
    ProviderReply,
)
from accesslint_core.agent.context import Message

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_BASE_URL = "https://api.anthropic.com"

MAX_CACHE_BLOCKS = 4
MIN_MESSAGES_TO_CACHE = 3
# The newest messages change every turn and are never cached
UNCACHED_TAIL = 2

EPHEMERAL = {"type": "ephemeral"}


def determine_cache_breakpoints(messages: List[Dict[str, Any]], reserved: int = 0) -> List[int]:
    """
    Message indices that get a cache breakpoint.

    A leading system message is always cached. The remaining blocks are
    spread evenly over everything but the last two messages. ``reserved``
    blocks are already spent elsewhere (e.g. on the system prompt).
    """
    breakpoints: List[int] = []
    count = len(messages)
    if count < MIN_MESSAGES_TO_CACHE:
        return breakpoints

    if messages[0].get("role") == "system":
        breakpoints.append(0)

    remaining = MAX_CACHE_BLOCKS - reserved - len(breakpoints)
    if remaining > 0 and count > MAX_CACHE_BLOCKS:
        cacheable = count - UNCACHED_TAIL
        interval = cacheable // (remaining + 1)
        i = 1
        while i <= remaining and interval * i < cacheable:
            point = min(interval * i, cacheable - 1)
            if point > 0 and point not in breakpoints:
                breakpoints.append(point)
            i += 1

    return breakpoints[: max(0, MAX_CACHE_BLOCKS - reserved)]


def apply_cache_control(messages: List[Dict[str, Any]], reserved: int = 0) -> List[Dict[str, Any]]:
    """Copy of ``messages`` with ephemeral cache control on the breakpoints."""
    breakpoints = set(determine_cache_breakpoints(messages, reserved))
    cached = []
    for index, message in enumerate(messages):
        message = dict(message)
        if index in breakpoints:
            content = message.get("content")
            if isinstance(content, str):
                message["content"] = [
                    {"type": "text", "text": content, "cache_control": dict(EPHEMERAL)}
                ]
            elif isinstance(content, list) and content:
                blocks = [dict(block) for block in content]
                blocks[-1]["cache_control"] = dict(EPHEMERAL)
                message["content"] = blocks
        cached.append(message)
    return cached


class AnthropicChatClient(BaseChatClient):
    """Anthropic Messages API client."""

    provider_name = "anthropic"
    display_name = "Anthropic"

    def __init__(self, model_name: str, api_key: str, tracker, base_url: str = DEFAULT_BASE_URL, **kwargs):
        super().__init__(model_name, api_key, tracker, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.model_options = {
            "max_tokens": DEFAULT_MAX_OUTPUT_TOKENS,
            "temperature": DEFAULT_TEMPERATURE,
        }

    def _endpoint(self) -> str:
        return f"{self.base_url}/v1/messages"

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _prepare_payload(
        self, messages: List[Message], system_prompt: Optional[str]
    ) -> Dict[str, Any]:
        # System text travels separately from the user/assistant turns
        system_parts = [m.text for m in messages if m.role == "system" and m.text]
        if system_prompt:
            system_parts.insert(0, system_prompt)
        turns = [m.to_dict() for m in messages if m.role != "system"]

        payload: Dict[str, Any] = {"model": self.model_name, **self.model_options}
        reserved = 0
        if system_parts:
            payload["system"] = [
                {"type": "text", "text": "\n".join(system_parts), "cache_control": dict(EPHEMERAL)}
            ]
            reserved = 1

        payload["messages"] = apply_cache_control(turns, reserved)
        breakpoints = determine_cache_breakpoints(turns, reserved)
        if breakpoints:
            self.logger.debug(
                "Prompt caching active: %d/%d breakpoints at %s",
                len(breakpoints) + reserved,
                MAX_CACHE_BLOCKS,
                breakpoints,
            )
        return payload

    def _extract_reply(self, data: Dict[str, Any]) -> ProviderReply:
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return ProviderReply(
            content=text,
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
            raw=data,
        )
