"""
JSON Parsing Utilities.

Lenient JSON extraction for model output. Models wrap tool parameters in
Markdown fences, quote keys with single quotes, forget to quote them at all
or leave trailing commas. ``parse_json_safely`` walks a fixed ladder of
cleanup stages and returns ``None`` only when every stage fails.
"""

import json
import logging
from typing import Any, List, Optional

from accesslint_core.grammar import (
    BALANCED_BRACES,
    JSON_EMBEDDED_OBJECT,
    JSON_FENCE,
    NEWLINE_INDENT,
    TRAILING_COMMA_ARRAY,
    TRAILING_COMMA_OBJECT,
    UNQUOTED_KEY,
    WHITESPACE_RUN,
)

logger = logging.getLogger(__name__)


def parse_json_safely(text: str) -> Optional[Any]:
    """
    Parse JSON from model text, tolerating common formatting mistakes.

    Stages, first success wins:
    1. strip a ```json fence, or pull the outermost {...} out of prose
    2. strict ``json.loads``
    3. normalise quotes, quote bare keys, drop trailing commas, collapse whitespace
    4. each one-level balanced {...} substring, largest first
    5. string-aware bracket counting, largest candidate first

    Returns:
        The decoded value, or None when nothing parses.
    """
    if not text or not text.strip():
        return None

    candidate = text.strip()
    fenced = JSON_FENCE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    elif not _looks_wrapped(candidate):
        embedded = JSON_EMBEDDED_OBJECT.search(candidate)
        if embedded:
            candidate = embedded.group(0)

    value = _try_loads(candidate)
    if value is not None:
        return value

    value = _try_loads(_clean_json(candidate))
    if value is not None:
        logger.debug("JSON recovered after cleanup")
        return value

    for match in sorted(BALANCED_BRACES.findall(candidate), key=len, reverse=True):
        value = _try_loads(match)
        if value is None:
            value = _try_loads(_clean_json(match))
        if value is not None:
            logger.debug("JSON recovered from balanced-brace substring")
            return value

    objects = _BracketParser(candidate).parse()
    if objects:
        return max(objects, key=lambda obj: len(json.dumps(obj)))

    logger.debug("All JSON recovery stages failed for %.80r", text)
    return None


def _looks_wrapped(text: str) -> bool:
    return (text.startswith("{") and text.endswith("}")) or (
        text.startswith("[") and text.endswith("]")
    )


def _try_loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def _clean_json(text: str) -> str:
    cleaned = text.replace("'", '"')
    cleaned = UNQUOTED_KEY.sub(r'"\1":', cleaned)
    cleaned = TRAILING_COMMA_OBJECT.sub("}", cleaned)
    cleaned = TRAILING_COMMA_ARRAY.sub("]", cleaned)
    cleaned = NEWLINE_INDENT.sub(" ", cleaned)
    cleaned = WHITESPACE_RUN.sub(" ", cleaned)
    return cleaned.strip()


class _BracketParser:
    """
    Stateful bracket counting that ignores brackets inside JSON strings.
    Every top-level balanced span is tried as a JSON candidate.
    """

    # pylint: disable=too-few-public-methods

    def __init__(self, text: str):
        self.text = text
        self.objects: List[Any] = []
        self._stack: List[str] = []
        self._start = -1
        self._in_string = False
        self._escape = False

    def parse(self) -> List[Any]:
        if "{" not in self.text and "[" not in self.text:
            return []

        for i, char in enumerate(self.text):
            self._process_char(i, char)

        return self.objects

    def _process_char(self, i: int, char: str):
        if self._escape:
            self._escape = False
            return
        if char == "\\" and self._in_string:
            self._escape = True
            return
        if char == '"' and self._stack:
            self._in_string = not self._in_string
            return
        if self._in_string:
            return

        if char in "{[":
            if not self._stack:
                self._start = i
            self._stack.append(char)
        elif char in "}]":
            self._handle_closing(char, i)

    def _handle_closing(self, char: str, index: int):
        expected_open = "{" if char == "}" else "["
        if not self._stack:
            return
        if self._stack[-1] != expected_open:
            # Mismatched nesting; abandon this candidate
            self._stack.clear()
            return

        self._stack.pop()
        if not self._stack:
            value = _try_loads(self.text[self._start : index + 1])
            if isinstance(value, (dict, list)):
                self.objects.append(value)
