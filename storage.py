"""
Client-side key/value storage

A small stand-in for the browser's localStorage: string keys mapping to
string values. `FileStorage` keeps the whole map in one JSON file that is
rewritten on every mutation.
"""
import json
import logging
import os
import tempfile
from typing import Dict, List, Optional

from config import STORAGE_PATH

logger = logging.getLogger(__name__)


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Storage values must be strings, got {type(value).__name__}")
        self._data[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._data.clear()
        self._flush()

    def keys(self) -> List[str]:
        return list(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def _flush(self) -> None:
        pass


class FileStorage(MemoryStorage):
    """Storage persisted to a JSON file, loaded once on construction."""

    def __init__(self, path: str = STORAGE_PATH):
        self.path = path
        super().__init__(self._load())

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Failed to read storage file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.error("Ignoring storage file %s: not a JSON object", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".storage-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
