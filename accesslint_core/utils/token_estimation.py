#!/usr/bin/env python3
"""
Token Estimation for AccessLint Core
Heuristic character-density estimator; no tokenizer dependency.
"""

import math
from typing import Iterable

from accesslint_core.grammar import CODE_MARKERS, TECHNICAL_MARKERS, TOOL_MARKUP

TOOL_CHARS_PER_TOKEN = 3.0
CODE_CHARS_PER_TOKEN = 3.2
TECHNICAL_CHARS_PER_TOKEN = 3.5
PROSE_CHARS_PER_TOKEN = 4.2

TECHNICAL_MATCH_THRESHOLD = 3


class TokenEstimator:
    """
    Estimates token counts from character length, adjusting the
    characters-per-token divisor by content type.

    Content bands, first match wins:
    - tool-call markup (TOOL_CALL:, INPUT:, Result:) -> 3.0 chars/token
    - code fences or code keywords -> 3.2
    - at least three path/extension matches -> 3.5
    - anything else (natural language) -> 4.2

    The result is rounded up so estimates never under-count. This is a
    heuristic, not a tokenizer.
    """

    def divisor_for(self, text: str) -> float:
        """Characters-per-token divisor for the given text."""
        if TOOL_MARKUP.search(text):
            return TOOL_CHARS_PER_TOKEN
        if CODE_MARKERS.search(text):
            return CODE_CHARS_PER_TOKEN
        if len(TECHNICAL_MARKERS.findall(text)) >= TECHNICAL_MATCH_THRESHOLD:
            return TECHNICAL_CHARS_PER_TOKEN
        return PROSE_CHARS_PER_TOKEN

    def estimate(self, text: str) -> int:
        """
        Estimate token count for text.

        Args:
            text: Input text to analyze

        Returns:
            Non-negative token estimate; 0 for empty text.
        """
        if not text:
            return 0
        return math.ceil(len(text) / self.divisor_for(text))

    def estimate_many(self, texts: Iterable[str]) -> int:
        return sum(self.estimate(text) for text in texts)


_default_estimator = TokenEstimator()


def estimate_tokens(text: str) -> int:
    """Module-level shortcut using the shared stateless estimator."""
    return _default_estimator.estimate(text)
