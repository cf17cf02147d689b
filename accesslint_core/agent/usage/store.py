"""
Usage Stores
============
Key-value persistence for usage history and session ids. The tracker only
needs ``get(key, default)`` and ``update(key, value)``; values must be
JSON-serialisable.
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Union

from accesslint_core.exceptions import UsageStoreError


class UsageStore(ABC):
    """Opaque durable key-value store."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def update(self, key: str, value: Any) -> None:
        pass


class MemoryUsageStore(UsageStore):
    """In-process store; values are deep-copied in and out."""

    def __init__(self, initial: Dict[str, Any] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def update(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class JsonFileUsageStore(UsageStore):
    """
    Whole store kept as one JSON document on disk.

    The file is read lazily on first access and rewritten on every update.
    A missing file is an empty store.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._data: Dict[str, Any] = None
        self.logger = logging.getLogger(__name__)

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data

        if not self.path.exists():
            self._data = {}
            return self._data

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise UsageStoreError(
                f"Invalid JSON format in usage file {self.path}: {e}",
                file_path=self.path,
                operation="load",
                original_error=e,
            ) from e
        except OSError as e:
            raise UsageStoreError(
                f"Failed to read usage file {self.path}: {e}",
                file_path=self.path,
                operation="load",
                original_error=e,
            ) from e

        if not isinstance(data, dict):
            raise UsageStoreError(
                f"Usage file {self.path} must contain a JSON object",
                file_path=self.path,
                operation="load",
            )
        self._data = data
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        data = self._load()
        if key not in data:
            return default
        return copy.deepcopy(data[key])

    def update(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = copy.deepcopy(value)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise UsageStoreError(
                f"Invalid usage data for JSON serialization: {e}",
                file_path=self.path,
                operation="save",
                original_error=e,
            ) from e
        except OSError as e:
            raise UsageStoreError(
                f"Failed to save usage file {self.path}: {e}",
                file_path=self.path,
                operation="save",
                original_error=e,
            ) from e
        self.logger.debug("Saved usage key %s to %s", key, self.path)
