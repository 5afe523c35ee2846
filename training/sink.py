# training/sink.py
# Training-data sink: every agent decision recorded as a flat example; KV-backed log with JSONL chat export.

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from common.utils import gen_id, json_dumps, now_ms
from memory.store.base import KeyValueStore
from observability.log import get_logger

log = get_logger(__name__)

TRAINING_KEY = "pratejra_fine_tuning_data"
DEFAULT_CAP = 1000


@dataclass
class TrainingInput:
    user: str
    system: Optional[str] = None
    context: Optional[str] = None


@dataclass
class TrainingExample:
    id: str
    timestamp: int
    source: str                 # "agent_simulation" | "supervisor" | ...
    model_used: str
    input: TrainingInput
    output: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "source": self.source,
            "model_used": self.model_used,
            "input": {"system": self.input.system, "user": self.input.user, "context": self.input.context},
            "output": self.output,
            "metadata": dict(self.metadata or {}),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TrainingExample":
        inp = d.get("input") or {}
        return cls(
            id=str(d.get("id") or gen_id("ft")),
            timestamp=int(d.get("timestamp") or 0),
            source=str(d.get("source") or ""),
            model_used=str(d.get("model_used") or ""),
            input=TrainingInput(user=str(inp.get("user") or ""), system=inp.get("system"), context=inp.get("context")),
            output=str(d.get("output") or ""),
            metadata=dict(d.get("metadata") or {}),
        )


@runtime_checkable
class TrainingSink(Protocol):
    def record(self, source: str, model_used: str, input: TrainingInput, output: str,
               metadata: Optional[Dict[str, Any]] = None) -> None:
        ...


class KVTrainingSink:
    """
    Newest-first example log persisted as one JSON list under TRAINING_KEY,
    capped at `cap` entries (oldest dropped).
    """

    def __init__(self, kv: KeyValueStore, *, key: str = TRAINING_KEY, cap: int = DEFAULT_CAP) -> None:
        self.kv = kv
        self.key = key
        self.cap = max(1, int(cap))
        self._mu = threading.Lock()

    def record(self, source: str, model_used: str, input: TrainingInput, output: str,
               metadata: Optional[Dict[str, Any]] = None) -> None:
        ex = TrainingExample(
            id=gen_id("ft"),
            timestamp=now_ms(),
            source=source,
            model_used=model_used,
            input=input,
            output=output or "",
            metadata=dict(metadata or {}),
        )
        with self._mu:
            store = self._load()
            store.insert(0, ex.to_dict())
            del store[self.cap:]
            self.kv.set(self.key, json_dumps(store))
        log.debug("training_example_saved", source=source, model=model_used)

    def all(self) -> List[TrainingExample]:
        with self._mu:
            return [TrainingExample.from_dict(d) for d in self._load()]

    def clear(self) -> None:
        with self._mu:
            self.kv.delete(self.key)

    def export_jsonl(self) -> str:
        """
        One {"messages": [...]} object per line (system?, user + CONTEXT, assistant),
        the common chat fine-tuning layout. Newest example first.
        """
        lines: List[str] = []
        for ex in self.all():
            messages = []
            if ex.input.system:
                messages.append({"role": "system", "content": ex.input.system})
            user = ex.input.user
            if ex.input.context:
                user += f"\n\nCONTEXT:\n{ex.input.context}"
            messages.append({"role": "user", "content": user})
            messages.append({"role": "assistant", "content": ex.output})
            lines.append(json.dumps({"messages": messages}, ensure_ascii=False))
        return "\n".join(lines)

    def _load(self) -> List[Dict[str, Any]]:
        raw = self.kv.get(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("training_log_unreadable", key=self.key)
            return []
        return data if isinstance(data, list) else []


__all__ = ["TrainingInput", "TrainingExample", "TrainingSink", "KVTrainingSink", "TRAINING_KEY"]
