from dataclasses import dataclass, field
from typing import List

from .message import Message


@dataclass
class ContextStats:
    """
    Snapshot of one context-management pass.

    Attributes:
        total_messages: Messages handed to the pass.
        total_tokens: Estimated tokens handed to the pass.
        truncated_messages: Messages removed by the pass.
        tokens_saved: Tokens removed by the pass, never negative.
    """

    total_messages: int = 0
    total_tokens: int = 0
    truncated_messages: int = 0
    tokens_saved: int = 0


@dataclass
class ManagedContextResult:
    messages: List[Message] = field(default_factory=list)
    was_modified: bool = False
    stats: ContextStats = field(default_factory=ContextStats)


@dataclass
class CompressionResult:
    """Output of the heavier tool-result compression strategy."""

    messages: List[Message] = field(default_factory=list)
    compression_ratio: float = 1.0
    preserved_elements: List[str] = field(default_factory=list)
