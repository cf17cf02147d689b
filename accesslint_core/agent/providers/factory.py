"""Chat client factory helpers."""

from dataclasses import replace
from typing import Optional

import aiohttp

from accesslint_core.agent.base_chat_client import BaseChatClient
from accesslint_core.agent.context import ContextManager
from accesslint_core.agent.logic import ToolCallParser
from accesslint_core.agent.usage import (
    JsonFileUsageStore,
    MemoryUsageStore,
    RateLimiter,
    TokenTracker,
    UsageStore,
)
from accesslint_core.config.settings import PROVIDERS, Settings, get_settings
from accesslint_core.exceptions import ProviderConfigurationError
from accesslint_core.utils.retry import (
    API_CALL_RETRY_CONFIG,
    AZURE_OPENAI_RETRY_CONFIG,
    RetryConfig,
    RetryExecutor,
)

RETRY_PRESETS = {"azure_openai": AZURE_OPENAI_RETRY_CONFIG}


def create_tracker(
    settings: Settings, provider: str, store: Optional[UsageStore] = None
) -> TokenTracker:
    """Usage tracker with one rate limiter for ``provider`` taken from settings."""
    if store is None:
        if settings.usage_store_path:
            store = JsonFileUsageStore(settings.usage_store_path)
        else:
            store = MemoryUsageStore()
    limiter = RateLimiter(
        settings.rate_limit_tokens_per_minute,
        requests_per_minute=settings.rate_limit_requests_per_minute,
        burst_threshold=settings.rate_limit_burst_threshold,
    )
    return TokenTracker(
        store,
        rate_limits={provider: limiter},
        retention_days=settings.usage_retention_days,
    )


def retry_config_from(
    settings: Settings, preset: RetryConfig = API_CALL_RETRY_CONFIG
) -> RetryConfig:
    """``preset`` with only the retry fields that were set explicitly replaced."""
    overrides = {
        "max_retries": settings.retry_max_retries,
        "base_delay": settings.retry_base_delay,
        "max_delay": settings.retry_max_delay,
        "backoff_multiplier": settings.retry_backoff_multiplier,
        "jitter_enabled": settings.retry_jitter_enabled,
    }
    return replace(preset, **{k: v for k, v in overrides.items() if v is not None})


def create_chat_client(
    provider: Optional[str] = None,
    settings: Optional[Settings] = None,
    model_name: Optional[str] = None,
    tracker: Optional[TokenTracker] = None,
    store: Optional[UsageStore] = None,
    session: Optional[aiohttp.ClientSession] = None,
    system_prompt: Optional[str] = None,
    retry_executor: Optional[RetryExecutor] = None,
) -> BaseChatClient:
    """
    Instantiate the chat client for ``provider`` (default: the configured one).

    Raises:
        ProviderConfigurationError: Unknown provider or missing credentials.
    """
    settings = settings or get_settings()
    provider = (provider or settings.default_provider).lower()
    if provider not in PROVIDERS:
        raise ProviderConfigurationError(
            f"Unknown provider '{provider}'. Expected one of: {', '.join(PROVIDERS)}",
            provider_name=provider,
        )

    api_key = settings.api_key_for(provider)
    if not api_key:
        raise ProviderConfigurationError(
            f"API key not configured. Set {provider.upper()}_API_KEY.",
            provider_name=provider,
        )

    model_name = model_name or settings.model_for(provider)
    common = dict(
        tracker=tracker or create_tracker(settings, provider, store),
        context_manager=ContextManager(model_name),
        retry_executor=retry_executor or RetryExecutor(),
        retry_config=retry_config_from(
            settings, RETRY_PRESETS.get(provider, API_CALL_RETRY_CONFIG)
        ),
        parser=ToolCallParser(max_mistakes=settings.max_tool_mistakes),
        system_prompt=system_prompt,
        timeout=settings.request_timeout,
        session=session,
        chat_aggressiveness=settings.context_aggressiveness,
    )

    if provider == "anthropic":
        from .anthropic_chat_client import AnthropicChatClient

        return AnthropicChatClient(
            model_name, api_key, base_url=settings.anthropic_base_url, **common
        )
    if provider == "azure_openai":
        from .azure_openai_chat_client import AzureOpenAIChatClient

        return AzureOpenAIChatClient(
            model_name, api_key, endpoint=settings.azure_openai_endpoint, **common
        )

    from .gemini_chat_client import GeminiChatClient

    return GeminiChatClient(model_name, api_key, base_url=settings.gemini_base_url, **common)
