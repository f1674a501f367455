from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict


logger = logging.getLogger(__name__)


class JsonStore:
    """A small key-value document persisted as one JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.lock = threading.RLock()
        self._data: Dict[str, Any] | None = None

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        data: Dict[str, Any] = {}
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    data = loaded
                else:
                    logger.warning("Store %s does not hold an object; starting empty", self.path)
            except (OSError, json.JSONDecodeError) as exc:
                logger.error("Failed to read store %s: %s", self.path, exc)
        self._data = data
        return data

    def get(self, key: str, default: Any = None) -> Any:
        with self.lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self.lock:
            self._load()[key] = value

    def save(self) -> None:
        with self.lock:
            data = self._load()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp, self.path)
            except OSError:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise

    def reload(self) -> None:
        with self.lock:
            self._data = None
