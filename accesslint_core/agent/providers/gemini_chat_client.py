#!/usr/bin/env python3
"""
Gemini Chat Client Provider
===========================

``generateContent`` REST endpoint over aiohttp. The API key travels as a
query parameter and is kept out of logged URLs.
"""

from typing import Any, Dict, List, Optional

from accesslint_core.agent.base_chat_client import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_TEMPERATURE,
    BaseChatClient,
    ProviderReply,
)
from accesslint_core.agent.context import Message

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Gemini names the assistant "model"
ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiChatClient(BaseChatClient):
    """Google Gemini client."""

    provider_name = "gemini"
    display_name = "Gemini"

    def __init__(self, model_name: str, api_key: str, tracker, base_url: str = DEFAULT_BASE_URL, **kwargs):
        super().__init__(model_name, api_key, tracker, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.generation_config = {
            "temperature": DEFAULT_TEMPERATURE,
            "maxOutputTokens": DEFAULT_MAX_OUTPUT_TOKENS,
        }

    def _endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model_name}:generateContent"

    def _params(self) -> Dict[str, str]:
        return {"key": self.api_key}

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _prepare_payload(
        self, messages: List[Message], system_prompt: Optional[str]
    ) -> Dict[str, Any]:
        system_parts = [m.text for m in messages if m.role == "system" and m.text]
        if system_prompt:
            system_parts.insert(0, system_prompt)

        contents = [
            {"role": ROLE_MAP[m.role], "parts": [{"text": m.text}]}
            for m in messages
            if m.role in ROLE_MAP
        ]
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": dict(self.generation_config),
        }
        if system_parts:
            payload["systemInstruction"] = {"parts": [{"text": "\n".join(system_parts)}]}
        return payload

    def _extract_reply(self, data: Dict[str, Any]) -> ProviderReply:
        candidates = data.get("candidates") or []
        text = ""
        if candidates and isinstance(candidates[0], dict):
            parts = (candidates[0].get("content") or {}).get("parts") or []
            text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        usage = data.get("usageMetadata") or {}
        return ProviderReply(
            content=text,
            input_tokens=usage.get("promptTokenCount"),
            output_tokens=usage.get("candidatesTokenCount"),
            raw=data,
        )
