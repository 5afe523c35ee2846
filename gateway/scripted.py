# gateway/scripted.py
# Offline gateway that replays canned replies in order (tests, demos, dry runs).

from __future__ import annotations

import json
import threading
from collections import deque
from pathlib import Path
from typing import Any, Deque, List, Optional, Tuple, Union

from .base import GenerateOptions

Reply = Union[str, dict, BaseException]


class ScriptedGateway:
    """
    Each generate() pops the next reply:
      - dict  -> returned as JSON text
      - str   -> returned as-is
      - exception instance -> raised
    When the script runs out, `default` is used (or an IndexError is raised).
    Every call is recorded in `calls` as (prompt, options).
    """

    def __init__(self, replies: Optional[List[Reply]] = None, *, default: Optional[Reply] = None,
                 model_name: str = "scripted", delay_s: float = 0.0) -> None:
        self.model_name = model_name
        self._replies: Deque[Reply] = deque(replies or [])
        self._default = default
        self._delay_s = float(delay_s)
        self._mu = threading.Lock()
        self.calls: List[Tuple[str, GenerateOptions]] = []

    @classmethod
    def from_file(cls, path: Union[str, Path], **kw: Any) -> "ScriptedGateway":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        replies = data.get("replies", []) if isinstance(data, dict) else list(data)
        default = data.get("default") if isinstance(data, dict) else None
        return cls(replies, default=default, **kw)

    def push(self, *replies: Reply) -> None:
        with self._mu:
            self._replies.extend(replies)

    def generate(self, prompt: str, options: GenerateOptions) -> str:
        with self._mu:
            self.calls.append((prompt, options))
            if self._replies:
                reply = self._replies.popleft()
            elif self._default is not None:
                reply = self._default
            else:
                raise IndexError("scripted gateway has no replies left")
        if self._delay_s:
            threading.Event().wait(self._delay_s)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return str(reply)


__all__ = ["ScriptedGateway"]
