# memory/store/filekv.py
# File-backed KV: one file per key under a directory, replaced atomically on every set().

from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Optional, Union

from common.utils import ensure_dir, write_text

from .base import KeyValueStore


def _safe_name(key: str) -> str:
    return "".join(c if c.isalnum() or c in "-_." else "-" for c in key) + ".json"


class FileKV(KeyValueStore):
    """
    Directory layout:
      data_dir/
        <key>.json    # latest value, written via temp file + os.replace

    A crash mid-write leaves the previous value intact.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self._dir = ensure_dir(Path(data_dir))
        self._lock = threading.RLock()

    def path_for(self, key: str) -> Path:
        return self._dir / _safe_name(key)

    def get(self, key: str) -> Optional[str]:
        p = self.path_for(key)
        with self._lock:
            if not p.exists():
                return None
            return p.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        with self._lock:
            write_text(self.path_for(key), value, atomic=True)

    def delete(self, key: str) -> None:
        with self._lock:
            self.path_for(key).unlink(missing_ok=True)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(p.stem for p in self._dir.glob("*.json"))
