#!/usr/bin/env python3
"""
Azure OpenAI Chat Client Provider
=================================

Chat-completions deployment endpoint over aiohttp. The endpoint setting is
the full deployment URL including ``api-version``.
"""

from typing import Any, Dict, List, Optional

from accesslint_core.agent.base_chat_client import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_TEMPERATURE,
    BaseChatClient,
    ProviderReply,
)
from accesslint_core.agent.context import Message
from accesslint_core.exceptions import ProviderConfigurationError


class AzureOpenAIChatClient(BaseChatClient):
    """Azure OpenAI client; 429s carry the server's retry-after hint."""

    provider_name = "azure_openai"
    display_name = "Azure OpenAI"

    def __init__(self, model_name: str, api_key: str, tracker, endpoint: str = None, **kwargs):
        if not endpoint:
            raise ProviderConfigurationError(
                "Azure OpenAI endpoint not configured. Set AZURE_OPENAI_ENDPOINT.",
                provider_name=self.provider_name,
            )
        super().__init__(model_name, api_key, tracker, **kwargs)
        self.endpoint = endpoint
        self.model_options = {
            "max_tokens": DEFAULT_MAX_OUTPUT_TOKENS,
            "temperature": DEFAULT_TEMPERATURE,
        }

    def _endpoint(self) -> str:
        return self.endpoint

    def _headers(self) -> Dict[str, str]:
        return {"api-key": self.api_key, "Content-Type": "application/json"}

    async def _call_with_retry(self, operation, cancel_event):
        return await self.retry_executor.retry_azure_openai(
            operation, f"{self.display_name} API call", cancel_event, self.retry_config
        )

    def _prepare_payload(
        self, messages: List[Message], system_prompt: Optional[str]
    ) -> Dict[str, Any]:
        payload_messages = [{"role": m.role, "content": m.text} for m in messages]
        if system_prompt:
            payload_messages.insert(0, {"role": "system", "content": system_prompt})
        return {"messages": payload_messages, **self.model_options}

    def _extract_reply(self, data: Dict[str, Any]) -> ProviderReply:
        choices = data.get("choices") or []
        content = ""
        if choices and isinstance(choices[0], dict):
            content = (choices[0].get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}
        return ProviderReply(
            content=content,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
            raw=data,
        )
