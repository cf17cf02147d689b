#!/usr/bin/env python3
"""
Context Window Policy
=====================

Per-model window sizes and the thresholds that decide when, and how hard,
the conversation is truncated.
"""

from typing import Optional

from accesslint_core.config.model_tables import ContextWindowInfo, ModelWindowTable
from accesslint_core.exceptions import ContextValidationError


# Lower multiplier -> truncation starts earlier
AGGRESSIVENESS_MULTIPLIERS = {
    "conservative": 0.7,
    "moderate": 1.0,
    "aggressive": 1.2,
}

STRATEGY_NONE = "none"
STRATEGY_LAST_TWO = "last_two"
STRATEGY_HALF = "half"
STRATEGY_QUARTER = "quarter"

TRUNCATION_STRATEGIES = (STRATEGY_NONE, STRATEGY_LAST_TWO, STRATEGY_HALF, STRATEGY_QUARTER)

HALF_STRATEGY_FACTOR = 1.5


def aggressiveness_multiplier(aggressiveness: str) -> float:
    try:
        return AGGRESSIVENESS_MULTIPLIERS[aggressiveness]
    except KeyError:
        raise ContextValidationError(
            f"Unknown aggressiveness '{aggressiveness}'. "
            f"Expected one of {tuple(AGGRESSIVENESS_MULTIPLIERS)}",
            validation_type="aggressiveness",
            invalid_value=aggressiveness,
        ) from None


class ContextWindowPolicy:
    """
    Window lookup and truncation decisions for a model.

    Model ids are matched case-insensitively by family substring against an
    injectable ModelWindowTable; unknown models get a 200k window with
    proportional reserves.
    """

    def __init__(self, table: Optional[ModelWindowTable] = None):
        self.table = table or ModelWindowTable()

    def window_info(self, model_id: str) -> ContextWindowInfo:
        return self.table.info_for(model_id)

    def should_truncate_proactively(
        self, tokens: int, model_id: str, aggressiveness: str = "moderate"
    ) -> bool:
        """
        True when ``tokens`` meets the recommended truncation threshold scaled
        by the aggressiveness multiplier.

        Raises:
            ContextValidationError: Unknown aggressiveness level.
        """
        multiplier = aggressiveness_multiplier(aggressiveness)
        info = self.window_info(model_id)
        return tokens >= info.recommended_truncation_threshold * multiplier

    def truncation_strategy(self, tokens: int, model_id: str) -> str:
        """
        Pick how much history to drop for the given token count.

        Returns:
            ``quarter`` at or above the hard ceiling, ``half`` at 1.5x the
            threshold, ``last_two`` at the threshold, otherwise ``none``.
        """
        info = self.window_info(model_id)
        threshold = info.recommended_truncation_threshold
        if tokens >= info.max_allowed_size:
            return STRATEGY_QUARTER
        if tokens >= threshold * HALF_STRATEGY_FACTOR:
            return STRATEGY_HALF
        if tokens >= threshold:
            return STRATEGY_LAST_TWO
        return STRATEGY_NONE
