#!/usr/bin/env python3
"""
Model Tables
============

Injectable lookup tables for context-window sizes and token pricing.
Both default to built-in data; tests and callers may pass their own.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from accesslint_core.exceptions import ConfigError

DEFAULT_CONTEXT_WINDOW = 200_000

# Checked in order, first substring match wins.
DEFAULT_WINDOW_FAMILIES: List[Tuple[str, int]] = [
    ("claude-sonnet-4", 200_000),
    ("claude-4", 200_000),
    ("claude-3-5-sonnet", 200_000),
    ("claude-3-7-sonnet", 200_000),
    ("claude-3-haiku", 200_000),
    ("claude-3-opus", 200_000),
    ("claude-2", 100_000),
    ("gemini", 128_000),
    ("gpt-4", 128_000),
    ("deepseek", 64_000),
]

# window size -> (max allowed size, recommended truncation threshold)
DEFAULT_WINDOW_RESERVES: Dict[int, Tuple[int, int]] = {
    64_000: (44_000, 34_000),
    100_000: (75_000, 65_000),
    128_000: (98_000, 88_000),
    200_000: (160_000, 140_000),
}

# provider -> model -> (input, output) USD per 1M tokens
DEFAULT_PRICES: Dict[str, Dict[str, Tuple[float, float]]] = {
    "anthropic": {
        "claude-sonnet-4-20250514": (3.00, 15.00),
        "claude-3-7-sonnet-20250219": (3.00, 15.00),
        "claude-3-5-haiku-20241022": (0.25, 1.25),
        "claude-3-opus-20240229": (15.00, 75.00),
        "claude-3-sonnet-20240229": (3.00, 15.00),
        "claude-3-haiku-20240307": (0.25, 1.25),
    },
    "gemini": {
        "gemini-pro": (0.50, 1.50),
        "gemini-pro-vision": (0.50, 1.50),
        "gemini-1.5-pro": (1.25, 5.00),
        "gemini-1.5-flash": (0.075, 0.30),
    },
    "azure_openai": {
        "gpt-4o": (2.50, 10.00),
        "gpt-4": (30.00, 60.00),
        "gpt-4-turbo": (10.00, 30.00),
        "gpt-35-turbo": (0.50, 1.50),
    },
}

DEFAULT_PRICE_MODELS: Dict[str, str] = {
    "anthropic": "claude-sonnet-4-20250514",
    "gemini": "gemini-pro",
    "azure_openai": "gpt-4o",
}


@dataclass(frozen=True)
class ContextWindowInfo:
    """Derived window constants for one model."""

    context_window: int
    max_allowed_size: int
    recommended_truncation_threshold: int


@dataclass
class ModelWindowTable:
    """
    Model-family -> context window lookup.

    Attributes:
        families: Ordered (substring, window) pairs; matched case-insensitively.
        reserves: Fixed (max allowed, threshold) pairs per known window size.
        default_window: Window assumed for unmatched model ids.
    """

    families: List[Tuple[str, int]] = field(
        default_factory=lambda: list(DEFAULT_WINDOW_FAMILIES)
    )
    reserves: Dict[int, Tuple[int, int]] = field(
        default_factory=lambda: dict(DEFAULT_WINDOW_RESERVES)
    )
    default_window: int = DEFAULT_CONTEXT_WINDOW

    def __post_init__(self):
        if self.default_window <= 0:
            raise ConfigError(
                f"Invalid default context window: {self.default_window}",
                field_name="default_window",
            )
        for window, (max_allowed, threshold) in self.reserves.items():
            if not threshold < max_allowed < window:
                raise ConfigError(
                    f"Reserves for window {window} must satisfy "
                    f"threshold < max allowed < window, got ({max_allowed}, {threshold})",
                    field_name="reserves",
                )

    def window_for(self, model_id: str) -> int:
        lowered = (model_id or "").lower()
        for family, window in self.families:
            if family in lowered:
                return window
        return self.default_window

    def info_for(self, model_id: str) -> ContextWindowInfo:
        window = self.window_for(model_id)
        if window in self.reserves:
            max_allowed, threshold = self.reserves[window]
        else:
            # Proportional reserves for windows without a fixed entry
            max_allowed = int(max(window - 40_000, window * 0.75))
            threshold = int(max(window - 60_000, window * 0.65))
        return ContextWindowInfo(
            context_window=window,
            max_allowed_size=max_allowed,
            recommended_truncation_threshold=threshold,
        )


@dataclass
class PricingTable:
    """
    Static price list in USD per one million tokens.

    Unknown models fall back to the provider's default model; unknown
    providers cost nothing.
    """

    prices: Dict[str, Dict[str, Tuple[float, float]]] = field(
        default_factory=lambda: {p: dict(m) for p, m in DEFAULT_PRICES.items()}
    )
    default_models: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PRICE_MODELS)
    )

    def __post_init__(self):
        for provider, model in self.default_models.items():
            if model not in self.prices.get(provider, {}):
                raise ConfigError(
                    f"Default model '{model}' has no price for provider '{provider}'",
                    field_name="default_models",
                )

    def rates_for(self, provider: str, model: str) -> Optional[Tuple[float, float]]:
        models = self.prices.get(provider)
        if not models:
            return None
        if model in models:
            return models[model]
        default = self.default_models.get(provider)
        return models.get(default) if default else None

    def cost(self, input_tokens: int, output_tokens: int, model: str, provider: str) -> float:
        rates = self.rates_for(provider, model)
        if rates is None:
            return 0.0
        input_rate, output_rate = rates
        return (input_tokens / 1_000_000) * input_rate + (
            output_tokens / 1_000_000
        ) * output_rate
