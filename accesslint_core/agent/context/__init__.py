from .file_tracker import FileReadTracker
from .manager import PRESERVED_PREFIX_LENGTH, ContextManager
from .message import Message
from .structs import CompressionResult, ContextStats, ManagedContextResult
from .window import ContextWindowPolicy

__all__ = [
    "ContextManager",
    "ContextWindowPolicy",
    "FileReadTracker",
    "Message",
    "ContextStats",
    "ManagedContextResult",
    "CompressionResult",
    "PRESERVED_PREFIX_LENGTH",
]
