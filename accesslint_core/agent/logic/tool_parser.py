"""
Tool Call Parsing
=================
Strict XML tool-call protocol: ``<tool_name>{json}</tool_name>`` or
``<tool_name><param>value</param></tool_name>``.

The parser fails fast. Every protocol violation raises a ToolCallParseError
whose feedback text is meant to go straight back to the model, and bumps a
mistake counter shared by all calls on the same parser instance.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from accesslint_core.exceptions import (
    MALFORMED_XML,
    SCHEMA_VALIDATION,
    UNKNOWN_TOOL,
    MaxMistakesError,
    ToolCallParseError,
)
from accesslint_core.grammar import (
    ANY_XML_BLOCK,
    EXCESS_NEWLINES,
    JSON_SHAPED_CONTENT,
    OPENING_TAG,
    TOOL_CALL_BLOCK,
    XML_PARAMETER,
)
from accesslint_core.utils.json_parser import parse_json_safely

DEFAULT_MAX_MISTAKES = 3

STRICT_FORMAT_EXAMPLE = """
Your response must be in strict XML format. Examples:

<read_file>
{
  "file_path": "src/main.ts"
}
</read_file>

<write_file>
{
  "file_path": "index.html",
  "content": "<!DOCTYPE html>\\n<html>\\n<body>\\n<h1>Hello World</h1>\\n</body>\\n</html>"
}
</write_file>

<list_directory>
{
  "path": ".",
  "recursive": false
}
</list_directory>

NO other formats accepted: no TOOL_CALL:, no function(), no natural language
ALWAYS include ALL required parameters
ALWAYS use exact parameter names as shown above"""

_PLACEHOLDERS = {"string": "value", "number": 0, "boolean": False}


@dataclass(frozen=True)
class ToolDefinition:
    """
    A tool the model may call.

    ``input_schema`` is JSON-schema-like: ``{"required": [...],
    "properties": {name: {"type": "string" | "number" | "boolean"}}}``.
    """

    name: str
    input_schema: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    @property
    def required(self) -> List[str]:
        return list(self.input_schema.get("required") or [])

    @property
    def properties(self) -> Dict[str, Dict[str, Any]]:
        return dict(self.input_schema.get("properties") or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolDefinition":
        schema = data.get("input_schema", data.get("inputSchema")) or {}
        return cls(name=data["name"], input_schema=schema, description=data.get("description", ""))


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    input: Dict[str, Any]


@dataclass
class ParseResult:
    """Prose with tool blocks stripped, plus tool calls in order of appearance."""

    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class StreamChunkResult:
    has_complete_tool_call: bool = False
    tool_call_detected: Optional[str] = None
    should_buffer: bool = False
    tool_call_text: Optional[str] = None


ToolSpec = Union[ToolDefinition, Dict[str, Any]]


def generate_tool_call_id() -> str:
    return f"tool_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _type_matches(expected: str, value: Any) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    return True


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if value is None:
        return "null"
    return "object"


class ToolCallParser:
    """
    Parses strict XML tool calls out of model text.

    One parser per agent session: the mistake counter is instance state and
    only ``reset_mistake_counter`` clears it.
    """

    def __init__(self, tools: Iterable[ToolSpec] = (), max_mistakes: int = DEFAULT_MAX_MISTAKES):
        self.logger = logging.getLogger(__name__)
        self.max_mistakes = max_mistakes
        self._tools: Dict[str, ToolDefinition] = {}
        self._mistakes = 0
        self._streaming_buffer = ""
        self.update_tools(tools)

    # ------------------------------------------------------------------ catalog

    def update_tools(self, tools: Iterable[ToolSpec]):
        """Replace the tool catalog."""
        self._tools = {}
        for tool in tools:
            definition = tool if isinstance(tool, ToolDefinition) else ToolDefinition.from_dict(tool)
            self._tools[definition.name] = definition

    def get_available_tools(self) -> List[str]:
        return list(self._tools)

    def get_tool_schema(self, tool_name: str) -> str:
        """Expected-shape example for one tool, used in corrective feedback."""
        definition = self._tools.get(tool_name)
        if definition is None:
            return f"Tool {tool_name} not found."

        properties = definition.properties
        example = {
            param: _PLACEHOLDERS.get(properties[param].get("type"), "value")
            for param in definition.required
            if param in properties
        }
        return (
            f"Expected schema for {tool_name}:\n"
            f"<{tool_name}>\n{json.dumps(example, indent=2)}\n</{tool_name}>\n\n"
            f"Required parameters: {', '.join(definition.required)}"
        )

    # ------------------------------------------------------------------ mistakes

    def reset_mistake_counter(self):
        self._mistakes = 0

    def get_mistake_count(self) -> int:
        return self._mistakes

    def get_parser_stats(self) -> Dict[str, Any]:
        return {
            "mistake_count": self._mistakes,
            "tools_registered": len(self._tools),
            "supported_formats": ["strict_xml_only"],
        }

    def _fail(
        self, kind: str, message: str, tool_name: Optional[str] = None, details: str = ""
    ) -> ToolCallParseError:
        """Count one mistake and build the error to raise."""
        self._mistakes += 1
        if details:
            example = f"{details}\n{STRICT_FORMAT_EXAMPLE}"
        else:
            example = STRICT_FORMAT_EXAMPLE.lstrip("\n")
        error = ToolCallParseError(
            kind, message, tool_name=tool_name, example=example, mistake_count=self._mistakes
        )
        self.logger.warning(
            "Tool call rejected (%d/%d): %s", self._mistakes, self.max_mistakes, error.message
        )

        if self._mistakes >= self.max_mistakes:
            return MaxMistakesError(self.max_mistakes, example=example, last_error=error)
        return error

    # ------------------------------------------------------------------ parsing

    def parse_response(self, response: str) -> ParseResult:
        """
        Extract tool calls from a complete model response.

        Returns:
            ParseResult; empty input yields an empty result.

        Raises:
            ToolCallParseError: UNKNOWN_TOOL, MALFORMED_XML or SCHEMA_VALIDATION.
            MaxMistakesError: The mistake ceiling was reached.
        """
        if not response or not response.strip():
            return ParseResult()

        tool_calls: List[ToolCall] = []
        clean_text = response

        for match in TOOL_CALL_BLOCK.finditer(response):
            tool_name = match.group(1).strip()
            content = match.group(2).strip()

            if tool_name not in self._tools:
                raise self._fail(
                    UNKNOWN_TOOL,
                    f"Unknown tool: {tool_name}",
                    tool_name=tool_name,
                    details=f"Available tools: {', '.join(self._tools)}",
                )

            tool_input = self._parse_parameters(tool_name, content)
            self._validate(tool_name, tool_input)

            tool_calls.append(ToolCall(id=generate_tool_call_id(), name=tool_name, input=tool_input))
            clean_text = clean_text.replace(match.group(0), "", 1)

        if not tool_calls and ANY_XML_BLOCK.search(response):
            raise self._fail(MALFORMED_XML, "XML tool blocks found but could not be parsed")

        text = EXCESS_NEWLINES.sub("\n\n", clean_text).strip()
        return ParseResult(text=text, tool_calls=tool_calls)

    def _parse_parameters(self, tool_name: str, content: str) -> Dict[str, Any]:
        if JSON_SHAPED_CONTENT.match(content):
            parsed = parse_json_safely(content)
            if parsed is None:
                raise self._fail(
                    MALFORMED_XML,
                    f"Failed to parse tool {tool_name}: Invalid JSON in tool parameters",
                    tool_name=tool_name,
                )
            if not isinstance(parsed, dict):
                raise self._fail(
                    MALFORMED_XML,
                    f"Failed to parse tool {tool_name}: parameters must be a JSON object",
                    tool_name=tool_name,
                )
            return parsed
        return self.parse_xml_parameters(content)

    @staticmethod
    def parse_xml_parameters(content: str) -> Dict[str, Any]:
        """``<param>value</param>`` pairs; JSON-looking values are decoded when valid."""
        params: Dict[str, Any] = {}
        for match in XML_PARAMETER.finditer(content):
            value: Any = match.group(2).strip()
            if value.startswith(("{", "[")):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError:
                    pass
            params[match.group(1)] = value
        return params

    def validate_tool_call(self, tool_name: str, tool_input: Dict[str, Any]) -> List[str]:
        """Schema problems for a call; an empty list means valid."""
        definition = self._tools.get(tool_name)
        if definition is None:
            return [f"Unknown tool: {tool_name}"]

        errors = [
            f"Missing required parameter: {param}"
            for param in definition.required
            if param not in tool_input
        ]
        properties = definition.properties
        for param, value in tool_input.items():
            expected = (properties.get(param) or {}).get("type")
            if expected and not _type_matches(expected, value):
                errors.append(f"Parameter {param} should be a {expected}, got {_type_name(value)}")
        return errors

    def _validate(self, tool_name: str, tool_input: Dict[str, Any]):
        errors = self.validate_tool_call(tool_name, tool_input)
        if errors:
            raise self._fail(
                SCHEMA_VALIDATION,
                f"Tool {tool_name} parameters invalid: {', '.join(errors)}",
                tool_name=tool_name,
                details=self.get_tool_schema(tool_name),
            )

    # ------------------------------------------------------------------ streaming

    def parse_streaming_chunk(self, chunk: str) -> StreamChunkResult:
        """
        Feed one stream chunk; report when a complete tool call has arrived.

        Text outside a known tool's tags is discarded except a trailing ``<``
        that may open the next tag.
        """
        self._streaming_buffer += chunk

        for match in OPENING_TAG.finditer(self._streaming_buffer):
            tool_name = match.group(1)
            if tool_name not in self._tools:
                continue

            closing_tag = f"</{tool_name}>"
            closing_index = self._streaming_buffer.find(closing_tag, match.end())
            if closing_index == -1:
                return StreamChunkResult(tool_call_detected=tool_name, should_buffer=True)

            end = closing_index + len(closing_tag)
            tool_call_text = self._streaming_buffer[match.start():end]
            self._streaming_buffer = self._streaming_buffer[end:]
            self.logger.debug("Complete tool call detected in stream: %s", tool_name)
            return StreamChunkResult(
                has_complete_tool_call=True,
                tool_call_detected=tool_name,
                tool_call_text=tool_call_text,
            )

        last_angle = self._streaming_buffer.rfind("<")
        self._streaming_buffer = self._streaming_buffer[last_angle:] if last_angle >= 0 else ""
        return StreamChunkResult()

    def clear_streaming_buffer(self):
        self._streaming_buffer = ""
