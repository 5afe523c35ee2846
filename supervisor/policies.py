# supervisor/policies.py
# Append-only meta-policy book, persisted to the KV store on every append.

from __future__ import annotations

import json
import threading
from typing import List, Optional

from common.errors import ErrorSink, report
from common.utils import gen_id, json_dumps
from memory.store.base import KeyValueStore
from observability.log import get_logger
from observability.metrics import note_persist_failure, set_policy_count

from .model import MetaPolicy

log = get_logger(__name__)


class MetaPolicyBook:
    def __init__(self, kv: Optional[KeyValueStore] = None, *, key: str = "pratejra_supervisor_meta",
                 error_sink: Optional[ErrorSink] = None) -> None:
        self.kv = kv
        self.key = key
        self.error_sink = error_sink
        self._mu = threading.Lock()
        self._policies: List[MetaPolicy] = []
        self._load()

    def append(self, rule: str, created_context: str = "") -> MetaPolicy:
        policy = MetaPolicy(id=gen_id("pol"), rule=rule, created_context=created_context or "", weight=1)
        with self._mu:
            self._policies = self._policies + [policy]
            count = len(self._policies)
            # saves land in append order
            self._save(json_dumps([p.to_dict() for p in self._policies]))
        set_policy_count(count)
        log.info("meta_policy_added", policy_id=policy.id, rule=rule, total=count)
        return policy

    def all(self) -> List[MetaPolicy]:
        with self._mu:
            return list(self._policies)

    def rules(self) -> List[str]:
        return [p.rule for p in self.all()]

    def __len__(self) -> int:
        with self._mu:
            return len(self._policies)

    def _load(self) -> None:
        if self.kv is None:
            return
        try:
            raw = self.kv.get(self.key)
            data = json.loads(raw) if raw else []
            policies = [MetaPolicy.from_dict(d) for d in data if isinstance(d, dict)]
        except Exception as e:
            report("state_load_failed", message=f"{type(e).__name__}: {e}", context={"key": self.key},
                   sink=self.error_sink, logger=log)
            return
        with self._mu:
            self._policies = policies
        set_policy_count(len(policies))

    def _save(self, payload: str) -> None:
        if self.kv is None:
            return
        try:
            self.kv.set(self.key, payload)
        except Exception as e:
            note_persist_failure(self.key)
            report("persistence_failure", message=f"{type(e).__name__}: {e}", context={"key": self.key},
                   sink=self.error_sink, logger=log)


__all__ = ["MetaPolicyBook"]
