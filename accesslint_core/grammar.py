#!/usr/bin/env python3
"""
Pattern Grammar
===============

Every regular expression used to recognise structure in model text lives
here: tool-call tags, lenient JSON cleanup, token-density heuristics,
file-read results and tool-result markers. Parsing control flow imports
these tables; nothing else compiles its own patterns.

Pre-compiled at module level so callers never recompile per message.
"""

import re
from typing import List, Tuple

# =============================================================================
# TOOL CALL PROTOCOL
# =============================================================================

# <name>...</name>, same-name close, non-greedy. Nested same-name tags are unsupported.
TOOL_CALL_BLOCK = re.compile(r"<(\w+)>([\s\S]*?)</\1>")

# Any open/close pair, names not required to match. Used to spot broken tool calls.
ANY_XML_BLOCK = re.compile(r"<\w+>[\s\S]*?</\w+>")

OPENING_TAG = re.compile(r"<(\w+)>")

# Parameter tags inside a tool block share the tool-call shape.
XML_PARAMETER = TOOL_CALL_BLOCK

JSON_SHAPED_CONTENT = re.compile(r"^\s*(?:\{[\s\S]*\}|\[[\s\S]*\])\s*$")

EXCESS_NEWLINES = re.compile(r"\n{3,}")

QUICK_TOOL_PATTERNS: List[re.Pattern] = [
    re.compile(r'<tool_use[^>]*name="([^"]+)"'),
    re.compile(r"(\w+)\s*\(\s*\{"),
    re.compile(r"TOOL_CALL:\s*(\w+)"),
]

# =============================================================================
# LENIENT JSON CLEANUP
# =============================================================================

JSON_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
JSON_EMBEDDED_OBJECT = re.compile(r"\{[\s\S]*\}")
UNQUOTED_KEY = re.compile(r"(\w+):")
TRAILING_COMMA_OBJECT = re.compile(r",\s*}")
TRAILING_COMMA_ARRAY = re.compile(r",\s*]")
NEWLINE_INDENT = re.compile(r"\n\s*")
WHITESPACE_RUN = re.compile(r"\s+")
# One level of nesting is enough for tool parameters.
BALANCED_BRACES = re.compile(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}")

# =============================================================================
# TOKEN DENSITY HEURISTICS
# =============================================================================

TOOL_MARKUP = re.compile(r"TOOL_CALL:|INPUT:|Result:")
CODE_MARKERS = re.compile(r"```[\s\S]*?```|function\s+\w+|class\s+\w+|import\s+|export\s+")
TECHNICAL_MARKERS = re.compile(r"/[^/\s]+|\.js|\.ts|\.py|\.java|src/|node_modules")

# =============================================================================
# FILE READS
# =============================================================================

# (pattern, group holding the returned content or path)
FILE_READ_RESULT = re.compile(
    r"(?:read_file|TOOL_CALL: read_file)[\s\S]*?(?:Result:|OUTPUT:)([\s\S]*?)(?=\n\n|\n[A-Z]|\Z)"
)
FILE_READ_SUCCESS = re.compile(r"Successfully read file: ([^\n]+)")
FILE_CONTENT_FOR = re.compile(r"File content for ([^\n:]+)")

FILE_READ_PATTERNS: List[re.Pattern] = [FILE_READ_RESULT, FILE_READ_SUCCESS, FILE_CONTENT_FOR]

FILE_PATH_ARGUMENT = re.compile(r"""(?:file_path|path)["']?\s*:\s*["']?([^"',\s}]+)""")

# =============================================================================
# TOOL RESULTS
# =============================================================================

TOOL_RESULT_PATTERNS: List[re.Pattern] = [
    re.compile(r"✓.*?:"),
    re.compile(r"✗.*?:"),
    re.compile(r"<function_results>"),
    re.compile(r"\[.*?\].*?:"),
]

SUCCESS_SUMMARY = re.compile(r"✓\s*(\w+):\s*(.{0,50})")
ERROR_SUMMARY = re.compile(r"✗\s*(\w+):\s*(.{0,100})")
FUNCTION_RESULTS_SUMMARY = re.compile(r"<function_results>\s*([\s\S]{0,100})")

# =============================================================================
# CONVERSATION TOPICS
# =============================================================================

TOPIC_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("file operations", ("file", "read", "write")),
    ("code search", ("search", "grep")),
    ("debugging", ("error", "fix")),
]


def is_tool_result(content: str) -> bool:
    """True when the text looks like a formatted tool result."""
    return any(pattern.search(content) for pattern in TOOL_RESULT_PATTERNS)
