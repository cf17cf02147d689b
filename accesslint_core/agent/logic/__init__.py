from .streaming import StreamingProcessor, StreamingResult
from .tool_parser import (
    ParseResult,
    StreamChunkResult,
    ToolCall,
    ToolCallParser,
    ToolDefinition,
)

__all__ = [
    "ToolCallParser",
    "ToolDefinition",
    "ToolCall",
    "ParseResult",
    "StreamChunkResult",
    "StreamingProcessor",
    "StreamingResult",
]
