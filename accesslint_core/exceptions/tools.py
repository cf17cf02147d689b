#!/usr/bin/env python3
"""
Tool Exception Definitions for AccessLint Core

Protocol errors raised by the tool-call parser. Every error carries the
text that should be fed back to the model as corrective instruction.
"""

from typing import Optional

from .base import AccessLintError

UNKNOWN_TOOL = "UNKNOWN_TOOL"
MALFORMED_XML = "MALFORMED_XML"
SCHEMA_VALIDATION = "SCHEMA_VALIDATION"
MAX_MISTAKES = "MAX_MISTAKES"

PARSE_ERROR_KINDS = (UNKNOWN_TOOL, MALFORMED_XML, SCHEMA_VALIDATION, MAX_MISTAKES)


class ToolError(AccessLintError):
    """Base exception for tool-related errors."""

    pass


class ToolCallParseError(ToolError):
    """
    Raised when model output violates the tool-call protocol.

    Attributes:
        kind: One of UNKNOWN_TOOL, MALFORMED_XML, SCHEMA_VALIDATION, MAX_MISTAKES.
        tool_name: Tool the model tried to call, when known.
        example: Correct-usage text appended to the feedback.
        mistake_count: Parser mistake counter after this error.
    """

    terminal = False

    def __init__(
        self,
        kind: str,
        message: str,
        tool_name: Optional[str] = None,
        example: str = "",
        mistake_count: int = 0,
        details: Optional[dict] = None,
    ):
        super().__init__(f"{kind}: {message}", details=details)
        self.kind = kind
        self.reason = message
        self.tool_name = tool_name
        self.example = example
        self.mistake_count = mistake_count
        self.user_hint = "The model produced an invalid tool call."

    def feedback(self) -> str:
        """Message to hand back to the model on its next turn."""
        if self.example:
            return f"{self.message}\n{self.example}"
        return self.message

    def __str__(self) -> str:
        return self.feedback()


class MaxMistakesError(ToolCallParseError):
    """Terminal protocol error: the mistake ceiling was reached."""

    terminal = True

    def __init__(self, max_mistakes: int, example: str = "", last_error=None):
        super().__init__(
            MAX_MISTAKES,
            f"Maximum mistakes reached ({max_mistakes}). Please follow the strict XML format.",
            example=example,
            mistake_count=max_mistakes,
        )
        self.original_error = last_error
        self.user_hint = "The model repeatedly produced invalid tool calls. Aborting."
