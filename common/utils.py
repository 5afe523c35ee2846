# common/utils.py
# Small shared helpers: epoch-ms clock, prefixed ids, tolerant env parsing, JSON + atomic text writes.

from __future__ import annotations

import contextlib
import json
import os
import tempfile
import time
import uuid
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

# ---------- time & ids ----------

def now_ms() -> int:
    return int(time.time() * 1000)


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


# ---------- env parsing ----------

def to_bool(v: Optional[str], default: bool) -> bool:
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on", "y", "t"}


def to_int(v: Optional[str], default: int) -> int:
    try:
        return int(v) if v is not None else default
    except ValueError:
        return default


def to_float(v: Optional[str], default: float) -> float:
    try:
        return float(v) if v is not None else default
    except ValueError:
        return default


# ---------- JSON ----------

def jsonable(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        obj = asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [jsonable(v) for v in obj]
    return obj


def json_dumps(obj: Any) -> str:
    # Compact; preserve Unicode.
    return json.dumps(jsonable(obj), ensure_ascii=False, separators=(",", ":"))


# ---------- paths & atomic writes ----------

def ensure_dir(p: Union[str, Path]) -> Path:
    path = Path(p)
    path.mkdir(parents=True, exist_ok=True)
    return path


def write_text(path: Union[str, Path], text: str, *, atomic: bool = True) -> Path:
    p = Path(path)
    ensure_dir(p.parent)
    if not atomic:
        p.write_text(text, encoding="utf-8")
        return p
    fd, tmpname = tempfile.mkstemp(prefix="._tmp_", dir=str(p.parent))
    os.close(fd)
    tmp = Path(tmpname)
    try:
        tmp.write_text(text, encoding="utf-8")
        tmp.replace(p)
    finally:
        with contextlib.suppress(OSError):
            if tmp.exists():
                tmp.unlink()
    return p


__all__ = [
    "now_ms", "gen_id",
    "to_bool", "to_int", "to_float",
    "jsonable", "json_dumps",
    "ensure_dir", "write_text",
]
