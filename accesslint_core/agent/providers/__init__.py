#!/usr/bin/env python3
"""
Provider Package
================

Chat clients for each supported vendor. Every client implements the
BaseChatClient pipeline and only supplies the vendor payload and reply
parsing.
"""
from .anthropic_chat_client import AnthropicChatClient
from .azure_openai_chat_client import AzureOpenAIChatClient
from .factory import create_chat_client, create_tracker
from .gemini_chat_client import GeminiChatClient

__all__ = [
    "AnthropicChatClient",
    "AzureOpenAIChatClient",
    "GeminiChatClient",
    "create_chat_client",
    "create_tracker",
]
