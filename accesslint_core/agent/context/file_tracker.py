import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from accesslint_core.grammar import (
    FILE_PATH_ARGUMENT,
    FILE_READ_PATTERNS,
    FILE_READ_RESULT,
)

# Tunable; no derivation beyond "nearly the same words"
DUPLICATE_SIMILARITY_THRESHOLD = 0.9
MIN_SIMILARITY_WORD_LENGTH = 3


@dataclass
class FileReadSnapshot:
    """Most recent distinct content seen for one file path."""

    first_index: int
    content: str
    timestamp: float


@dataclass(frozen=True)
class DuplicateRead:
    file_path: str
    original_index: int
    duplicate_index: int


def content_similarity(first: str, second: str) -> float:
    """
    Jaccard similarity of the lower-cased word sets of two texts.

    Words of two characters or fewer are ignored. Identical strings score 1.0;
    two texts with no qualifying words score 0.0.
    """
    if first == second:
        return 1.0
    words_a = {w for w in first.lower().split() if len(w) >= MIN_SIMILARITY_WORD_LENGTH}
    words_b = {w for w in second.lower().split() if len(w) >= MIN_SIMILARITY_WORD_LENGTH}
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def duplicate_read_notice(file_path: str, original_index: int, duplicate_index: int) -> str:
    return (
        "[DUPLICATE FILE READ OPTIMIZED]\n"
        f"File: {file_path}\n"
        f"Original read at message {original_index}, this duplicate at message "
        f"{duplicate_index} has been optimized.\n"
        "To see the full content, refer to the original message or re-read the file if needed.\n"
        "\n"
        "This optimization saves context space while preserving conversation flow."
    )


class FileReadTracker:
    """
    Remembers which files have been read during one optimisation pass so a
    repeated read of unchanged content can be swapped for a short reference.

    A read whose content changed meaningfully replaces the stored snapshot
    and is kept verbatim.
    """

    def __init__(self, similarity_threshold: float = DUPLICATE_SIMILARITY_THRESHOLD):
        self.similarity_threshold = similarity_threshold
        self.snapshots: Dict[str, FileReadSnapshot] = {}
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def extract_file_read(text: str) -> Optional[Tuple[str, str]]:
        """
        Recognise a file-read result in message text.

        Returns:
            ``(file_path, content)`` or None when the text is not a file read
            or no path can be found.
        """
        for pattern in FILE_READ_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue

            argument = FILE_PATH_ARGUMENT.search(text)
            if pattern is FILE_READ_RESULT:
                if not argument:
                    return None
                return argument.group(1), text[match.start(1):].strip()

            path = argument.group(1) if argument else match.group(1).strip()
            body = text[match.end():].lstrip(":").strip()
            return path, body
        return None

    def observe(self, index: int, text: str) -> Optional[DuplicateRead]:
        """
        Record a message's file read, if any.

        Returns:
            DuplicateRead when the same path was already read with content at
            or above the similarity threshold, otherwise None.
        """
        extracted = self.extract_file_read(text)
        if extracted is None:
            return None

        path, body = extracted
        snapshot = self.snapshots.get(path)
        if snapshot is not None:
            similarity = content_similarity(body, snapshot.content)
            if similarity >= self.similarity_threshold:
                self.logger.info(
                    "Detected duplicate file read: %s (first at message %d, duplicate at %d)",
                    path,
                    snapshot.first_index,
                    index,
                )
                return DuplicateRead(path, snapshot.first_index, index)
            self.logger.debug(
                "File %s changed since message %d (similarity %.2f)",
                path,
                snapshot.first_index,
                similarity,
            )

        self.snapshots[path] = FileReadSnapshot(index, body, time.time())
        return None

    def clear(self):
        """Reset state."""
        self.snapshots.clear()
