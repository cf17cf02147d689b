import copy
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

ROLES = ("system", "user", "assistant")

ContentBlock = Dict[str, Any]


@dataclass
class Message:
    """
    Represents a single message in the conversation.

    ``content`` is either plain text or an ordered list of typed content
    blocks (``{"type": "text", "text": ..., "cache_control": ...}``).
    Optimisation passes never edit a Message in place; they build a new one
    with ``with_content``.
    """

    role: str
    content: Union[str, List[ContentBlock]] = ""

    # Cached token estimate; None until annotated
    tokens: Optional[int] = None

    # Internal Metadata (Not sent to API)
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Plain text of the message; text blocks are joined with newlines."""
        if isinstance(self.content, str):
            return self.content
        parts = [
            block.get("text", "")
            for block in self.content or []
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ]
        return "\n".join(part for part in parts if part)

    def with_content(self, text: str) -> "Message":
        """Copy of this message with new text content and no cached tokens."""
        return replace(self, content=text, tokens=None, metadata=dict(self.metadata))

    def with_tokens(self, tokens: int) -> "Message":
        return replace(self, tokens=tokens, metadata=dict(self.metadata))

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to a provider payload dictionary.
        Removes internal fields like metadata, tokens and timestamp.
        """
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": copy.deepcopy(self.content)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        content = data.get("content")
        if content is None:
            content = ""
        return cls(
            role=data.get("role", "user"),
            content=copy.deepcopy(content),
            tokens=data.get("tokens"),
            timestamp=data.get("timestamp", time.time()),
            metadata=dict(data.get("metadata") or {}),
        )
