# memory/store/inmem.py
from __future__ import annotations

import threading
from typing import Dict, List, Optional

from .base import KeyValueStore


class InMemoryKV(KeyValueStore):
    """
    Simple, thread-safe, in-memory KV for development and tests.
    Keeps a write counter per key so tests can assert persistence happened.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._lock = threading.RLock()
        self._data: Dict[str, str] = dict(initial or {})
        self.writes: Dict[str, int] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self.writes[key] = self.writes.get(key, 0) + 1

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())
