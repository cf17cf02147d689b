# accesslint_core/config/settings.py
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from accesslint_core.config.model_tables import DEFAULT_PRICE_MODELS
from accesslint_core.exceptions import ConfigError

logger = logging.getLogger("Settings")

AGGRESSIVENESS_LEVELS = ("conservative", "moderate", "aggressive")
PROVIDERS = ("anthropic", "azure_openai", "gemini")


class Settings(BaseSettings):
    # === Environment Variables (CLEAN NAMES) ===
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    default_provider: str = "anthropic"
    # Unset: the provider's own default from DEFAULT_PRICE_MODELS
    default_model: Optional[str] = None

    anthropic_api_key: Optional[str] = Field(default=None, repr=False)
    anthropic_base_url: str = "https://api.anthropic.com"
    azure_openai_api_key: Optional[str] = Field(default=None, repr=False)
    azure_openai_endpoint: Optional[str] = None
    gemini_api_key: Optional[str] = Field(default=None, repr=False)
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    request_timeout: float = 120.0

    # Retry (seconds). Unset fields keep the provider's retry preset
    retry_max_retries: Optional[int] = None
    retry_base_delay: Optional[float] = None
    retry_max_delay: Optional[float] = None
    retry_backoff_multiplier: Optional[float] = None
    retry_jitter_enabled: Optional[bool] = None

    # Rate limiting / usage
    rate_limit_tokens_per_minute: int = 30_000
    rate_limit_requests_per_minute: int = 50
    rate_limit_burst_threshold: float = 0.8
    usage_retention_days: int = 30
    usage_store_path: Optional[Path] = None

    # Context / parser
    context_aggressiveness: str = "moderate"
    max_tool_mistakes: int = 3

    # === Pydantic V2 Configuration ===
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # === Model Validator ===

    @model_validator(mode="after")
    def validate_and_compute(self) -> "Settings":
        """Validate and normalise derived fields."""

        # 1. Log level
        if self.log_level.upper() not in logging._nameToLevel:
            raise ConfigError(f"Invalid log level: {self.log_level}", field_name="log_level")
        self.log_level = self.log_level.upper()

        # 2. Provider selection
        provider = (self.default_provider or "anthropic").strip().lower()
        if provider not in PROVIDERS:
            raise ConfigError(
                f"Invalid default_provider value. Expected one of {PROVIDERS}. "
                f"Got: {self.default_provider}",
                field_name="default_provider",
            )
        self.default_provider = provider

        # 3. Context aggressiveness
        aggressiveness = self.context_aggressiveness.strip().lower()
        if aggressiveness not in AGGRESSIVENESS_LEVELS:
            raise ConfigError(
                f"Invalid context_aggressiveness: {self.context_aggressiveness}",
                field_name="context_aggressiveness",
            )
        self.context_aggressiveness = aggressiveness

        # 4. Quotas and retry bounds
        if self.rate_limit_tokens_per_minute <= 0:
            raise ConfigError(
                "rate_limit_tokens_per_minute must be positive",
                field_name="rate_limit_tokens_per_minute",
            )
        if self.rate_limit_requests_per_minute <= 0:
            raise ConfigError(
                "rate_limit_requests_per_minute must be positive",
                field_name="rate_limit_requests_per_minute",
            )
        if not 0 < self.rate_limit_burst_threshold <= 1:
            raise ConfigError(
                "rate_limit_burst_threshold must be in (0, 1]",
                field_name="rate_limit_burst_threshold",
            )
        if self.retry_max_retries is not None and self.retry_max_retries < 0:
            raise ConfigError("retry_max_retries cannot be negative", field_name="retry_max_retries")
        if any(d is not None and d < 0 for d in (self.retry_base_delay, self.retry_max_delay)):
            raise ConfigError("retry delays cannot be negative", field_name="retry_base_delay")
        if self.max_tool_mistakes < 1:
            raise ConfigError("max_tool_mistakes must be at least 1", field_name="max_tool_mistakes")
        if self.usage_retention_days < 1:
            raise ConfigError(
                "usage_retention_days must be at least 1", field_name="usage_retention_days"
            )

        return self

    def api_key_for(self, provider: str) -> Optional[str]:
        """Return the configured API key for a provider name."""
        return {
            "anthropic": self.anthropic_api_key,
            "azure_openai": self.azure_openai_api_key,
            "gemini": self.gemini_api_key,
        }.get(provider)

    def model_for(self, provider: str) -> str:
        """Configured model for the default provider, else the provider's default."""
        if self.default_model and provider == self.default_provider:
            return self.default_model
        return DEFAULT_PRICE_MODELS[provider]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment and .env."""
    settings = Settings()
    logger.debug(
        "Settings loaded: provider=%s model=%s", settings.default_provider,
        settings.model_for(settings.default_provider),
    )
    return settings
