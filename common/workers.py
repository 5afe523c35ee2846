# common/workers.py
# Bounded, lossy background queue for fire-and-forget side calls (training examples, archive ingestion).

from __future__ import annotations

import queue
import threading
from typing import Any, Callable, List, Optional, Tuple

from observability.log import get_logger
from observability.metrics import note_offload

log = get_logger(__name__)

_Job = Tuple[Callable[..., Any], tuple, dict]


class BackgroundQueue:
    """
    Best-effort delivery on a small pool of daemon threads.

    - submit() never blocks: when the queue is full (or the pool is stopped)
      the job is dropped and counted. Delivery is explicitly lossy.
    - A job that raises is logged and counted; the worker keeps going.
    - Workers start lazily on the first submit().
    """

    def __init__(self, name: str = "offload", *, maxsize: int = 256, workers: int = 1) -> None:
        self.name = name
        self.workers = max(1, int(workers))
        self._q: "queue.Queue[Optional[_Job]]" = queue.Queue(maxsize=max(1, int(maxsize)))
        self._threads: List[threading.Thread] = []
        self._mu = threading.Lock()
        self._stopping = False
        self.dropped = 0
        self.failed = 0
        self.completed = 0

    # ----- lifecycle -----

    def start(self) -> None:
        with self._mu:
            if self._threads or self._stopping:
                return
            for i in range(self.workers):
                t = threading.Thread(target=self._worker, name=f"{self.name}-worker-{i + 1}", daemon=True)
                t.start()
                self._threads.append(t)

    def stop(self, *, drain: bool = True, timeout: Optional[float] = 2.0) -> None:
        """Idempotent. With drain=True, pending jobs run before workers exit."""
        with self._mu:
            if self._stopping:
                return
            self._stopping = True
            threads = list(self._threads)
        if not drain:
            self._discard_pending()
        # One poison pill per worker so each can exit cleanly
        for _ in threads:
            try:
                self._q.put(None, timeout=timeout)
            except queue.Full:
                log.warning("offload_stop_queue_full", queue=self.name)
        for t in threads:
            t.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return bool(self._threads) and not self._stopping

    # ----- producer side -----

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        """Queue fn(*args, **kwargs). Returns False when the job was dropped."""
        if self._stopping:
            self._drop("stopped")
            return False
        if not self._threads:
            self.start()
        try:
            self._q.put_nowait((fn, args, kwargs))
        except queue.Full:
            self._drop("full")
            return False
        note_offload(self.name, "submitted")
        return True

    def drain(self) -> None:
        """Block until every accepted job has been processed."""
        if not self._threads:
            return
        self._q.join()

    def pending(self) -> int:
        return self._q.qsize()

    # ----- internals -----

    def _drop(self, reason: str) -> None:
        self.dropped += 1
        note_offload(self.name, "dropped")
        log.debug("offload_dropped", queue=self.name, reason=reason)

    def _discard_pending(self) -> None:
        while True:
            try:
                self._q.get_nowait()
            except queue.Empty:
                return
            self._q.task_done()
            self._drop("discarded")

    def _worker(self) -> None:
        while True:
            job = self._q.get()
            try:
                if job is None:
                    return
                fn, args, kwargs = job
                try:
                    fn(*args, **kwargs)
                    self.completed += 1
                except Exception:
                    self.failed += 1
                    note_offload(self.name, "failed")
                    log.warning("offload_job_failed", queue=self.name, job=getattr(fn, "__qualname__", repr(fn)), exc_info=True)
            finally:
                self._q.task_done()


class InlineQueue:
    """Same surface as BackgroundQueue but runs jobs on the caller's thread (tests, scripts)."""

    def __init__(self, name: str = "inline") -> None:
        self.name = name
        self.failed = 0
        self.completed = 0
        self.dropped = 0

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        try:
            fn(*args, **kwargs)
            self.completed += 1
        except Exception:
            self.failed += 1
            note_offload(self.name, "failed")
            log.warning("offload_job_failed", queue=self.name, job=getattr(fn, "__qualname__", repr(fn)), exc_info=True)
        return True

    def drain(self) -> None:
        return None

    def stop(self, *, drain: bool = True, timeout: Optional[float] = 2.0) -> None:
        return None

    def pending(self) -> int:
        return 0


__all__ = ["BackgroundQueue", "InlineQueue"]
