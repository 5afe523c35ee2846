# common/broadcast.py
# Minimal pub/sub with a most-recent-first log; each handler sees the full log on subscribe and after every publish.

from __future__ import annotations

import threading
from typing import Callable, Generic, List, Optional, Tuple, TypeVar

from observability.log import get_logger
from observability.metrics import note_subscriber_error

from .errors import ErrorSink, report

T = TypeVar("T")
Handler = Callable[[List[T]], None]

log = get_logger(__name__)


class Broadcaster(Generic[T]):
    """
    Append-only log (newest first) + synchronous fan-out.

    Handler exceptions are isolated: logged, counted, and never propagated to
    the publisher. Handlers receive a copy of the log, so they can't mutate it.
    """

    def __init__(self, channel: str = "decisions", *, max_log: Optional[int] = None,
                 error_sink: Optional[ErrorSink] = None) -> None:
        self.channel = channel
        self.max_log = max_log
        self.error_sink = error_sink
        self._mu = threading.RLock()
        self._log: List[T] = []
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        with self._mu:
            self._handlers.append(handler)
            snapshot = list(self._log)
        self._deliver(handler, snapshot)

        def _unsubscribe() -> None:
            with self._mu:
                self._handlers = [h for h in self._handlers if h is not handler]

        return _unsubscribe

    def publish(self, item: T) -> None:
        self.notify(*self.record(item))

    def record(self, item: T) -> Tuple[List[Handler], List[T]]:
        """Log the item without fanning out. Pass the result to notify() once outside any caller lock."""
        with self._mu:
            self._log.insert(0, item)
            if self.max_log is not None and len(self._log) > self.max_log:
                del self._log[self.max_log:]
            return list(self._handlers), list(self._log)

    def notify(self, handlers: List[Handler], snapshot: List[T]) -> None:
        for h in handlers:
            self._deliver(h, list(snapshot))

    def history(self) -> List[T]:
        with self._mu:
            return list(self._log)

    def subscriber_count(self) -> int:
        with self._mu:
            return len(self._handlers)

    def _deliver(self, handler: Handler, items: List[T]) -> None:
        try:
            handler(items)
        except Exception as e:
            note_subscriber_error(self.channel)
            report(
                "subscriber_failure",
                message=f"{type(e).__name__}: {e}",
                context={"channel": self.channel, "handler": getattr(handler, "__qualname__", repr(handler))},
                sink=self.error_sink,
                logger=log,
            )


__all__ = ["Broadcaster", "Handler"]
