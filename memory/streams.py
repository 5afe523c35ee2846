# memory/streams.py
# Stream memory service: independent agent streams, three retrieval tiers, cross-stream peek, archival, KV persistence.

from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from common.broadcast import Broadcaster
from common.errors import ErrorSink, report
from common.utils import json_dumps, now_ms
from observability.log import get_logger
from observability.metrics import (
    note_archive,
    note_frame,
    note_persist_failure,
    note_stream_created,
    set_stream_gauges,
)

from .config import MEMCFG, MemoryConfig
from .models import ArchivedDocument, FrameDraft, MemoryFrame, MemoryStream, StreamStatus
from .store.base import KeyValueStore

log = get_logger(__name__)

IngestCallback = Callable[[ArchivedDocument], None]


def peek_not_found(stream_id: str) -> str:
    """Sentinel returned by share_peek() for ids that don't resolve."""
    return f"[System]: Stream {stream_id} not found or access denied."


@dataclass(frozen=True)
class StreamArchived:
    """Event published on the memory broadcaster when a stream is archived."""
    stream_id: str
    goal: str
    frame_count: int
    ts: int


class StreamMemory:
    """
    Owns a set of independent memory streams.

      - create/append/archive mutate; every mutation is persisted synchronously
      - short_term / medium_term / long_term render retrieval tiers as text
      - share_peek is the only cross-stream read

    Thread-safe: one re-entrant lock guards the stream map. Readers copy what they
    need under the lock, so a concurrent append is either fully visible or not at all.
    Unknown stream ids never raise; they log and return empty/sentinel values.
    """

    def __init__(
        self,
        kv: Optional[KeyValueStore] = None,
        *,
        cfg: MemoryConfig = MEMCFG,
        ingest: Optional[IngestCallback] = None,
        offload: Any = None,
        events: Optional[Broadcaster[StreamArchived]] = None,
        error_sink: Optional[ErrorSink] = None,
    ) -> None:
        self.cfg = cfg
        self.kv = kv
        self.ingest = ingest
        self.offload = offload           # BackgroundQueue-like: submit(fn, *args)
        self.events = events
        self.error_sink = error_sink

        self._lock = threading.RLock()
        self._streams: Dict[str, MemoryStream] = {}

        # Persistence ordering: snapshots carry a version; an older one never overwrites a newer one
        self._save_lock = threading.Lock()
        self._version = 0
        self._saved_version = 0

        self._load()

    # ----------------- Stream management -----------------

    def create_stream(self, goal: str) -> str:
        stream = MemoryStream.new(goal)
        with self._lock:
            self._streams[stream.id] = stream
            self._version += 1
        note_stream_created()
        log.info("stream_created", stream_id=stream.id, goal=stream.goal)
        self._persist()
        return stream.id

    def append_frame(self, stream_id: str, frame: Union[FrameDraft, MemoryFrame]) -> Optional[MemoryFrame]:
        """
        Append one frame. Unknown stream -> logged no-op (returns None).
        A full MemoryFrame is re-stamped so it can't claim another stream.
        """
        draft = frame if isinstance(frame, FrameDraft) else FrameDraft(
            agent_name=frame.agent_name,
            input=frame.input,
            thought=frame.thought,
            action=frame.action,
            output=frame.output,
            tags=frame.tags,
        )
        with self._lock:
            stream = self._streams.get(stream_id)
            if stream is None:
                sealed = None
            else:
                sealed = draft.seal(stream_id)
                # Rebinding (not list.append) keeps previously handed-out snapshots stable
                stream.frames = stream.frames + [sealed]
                self._version += 1

        if sealed is None:
            note_frame(False)
            report("unknown_stream", message="append_frame on unknown stream",
                   context={"stream_id": stream_id, "op": "append_frame"}, sink=self.error_sink, logger=log)
            return None

        note_frame(True)
        self._persist()
        return sealed

    def archive(self, stream_id: str) -> bool:
        """
        active -> archived (idempotent). Returns True only on the transition.
        Ingestion runs once, after the local state is committed; its failure is logged only.
        """
        with self._lock:
            stream = self._streams.get(stream_id)
            if stream is None:
                doc = None
                transitioned = False
            elif stream.status == StreamStatus.ARCHIVED:
                doc = None
                transitioned = False
            else:
                stream.status = StreamStatus.ARCHIVED
                self._version += 1
                transitioned = True
                frames = list(stream.frames)
                doc = ArchivedDocument(
                    id=stream.id,
                    title=f"Agent Stream: {stream.goal}",
                    body=json_dumps([f.to_dict() for f in frames]),
                    metadata={"type": "memory_stream", "frames": len(frames)},
                    goal=stream.goal,
                )

        if stream is None:
            report("unknown_stream", message="archive on unknown stream",
                   context={"stream_id": stream_id, "op": "archive"}, sink=self.error_sink, logger=log)
            return False
        if not transitioned:
            return False

        note_archive()
        log.info("stream_archived", stream_id=stream_id, frames=doc.metadata["frames"])
        self._persist()
        self._dispatch_ingest(doc)
        if self.events is not None:
            self.events.publish(StreamArchived(stream_id=stream_id, goal=doc.goal or "",
                                               frame_count=doc.metadata["frames"], ts=now_ms()))
        return True

    # ----------------- Retrieval tiers -----------------

    def short_term(self, stream_id: str, limit: Optional[int] = None) -> str:
        """
        Immediate working memory: the last `limit` frames, oldest to newest.
        "" when the stream is unknown, empty, or limit <= 0.
        """
        n = self.cfg.SHORT_TERM_LIMIT if limit is None else int(limit)
        frames = self._frames(stream_id)
        if not frames or n <= 0:
            return ""
        return "\n".join(
            f"[ShortTerm] {f.agent_name}: {f.thought} -> Action: {f.action} -> Output: {f.output}"
            for f in frames[-n:]
        )

    def medium_term(self, stream_id: str) -> str:
        """
        The whole narrative arc: goal line + one line per frame.
        O(n) in stream length; don't call on a hot path without caching.
        """
        with self._lock:
            stream = self._streams.get(stream_id)
            if stream is None:
                return ""
            goal, frames = stream.goal, stream.frames
        lines = [f"STREAM GOAL: {goal}"]
        lines.extend(f"Step: {f.action} by {f.agent_name}" for f in frames)
        return "\n".join(lines)

    def long_term(self, query: str) -> str:
        """
        Cross-stream knowledge from archived streams only: plain substring match on
        the goal or the serialized frame log. No ranking; map order.
        """
        q = query or ""
        with self._lock:
            archived = [(s.id, s.goal, s.frames) for s in self._streams.values() if s.archived]
        out: List[str] = []
        for sid, goal, frames in archived:
            if q in goal or q in json_dumps([f.to_dict() for f in frames]):
                out.append(f"[Archived Stream {sid}]: Goal - {goal}")
        return "\n".join(out)

    async def long_term_async(self, query: str) -> str:
        return await asyncio.to_thread(self.long_term, query)

    def share_peek(self, target_stream_id: str) -> str:
        """Read-only view of another stream: goal + last PEEK_LIMIT actions."""
        with self._lock:
            stream = self._streams.get(target_stream_id)
            if stream is None:
                return peek_not_found(target_stream_id)
            goal, frames = stream.goal, stream.frames
        recent = frames[-self.cfg.PEEK_LIMIT:] if self.cfg.PEEK_LIMIT > 0 else []
        summary = ", ".join(f"{f.agent_name} did {f.action}" for f in recent)
        return f"[Remote Context {target_stream_id}]\nGoal: {goal}\nRecent Activity: {summary}"

    # ----------------- Introspection -----------------

    def get_stream(self, stream_id: str) -> Optional[MemoryStream]:
        """Detached copy (frames are immutable, the list is not shared)."""
        with self._lock:
            s = self._streams.get(stream_id)
            if s is None:
                return None
            return MemoryStream(id=s.id, goal=s.goal, status=s.status, frames=list(s.frames), started_at=s.started_at)

    def list_streams(self, status: Optional[StreamStatus] = None) -> List[str]:
        with self._lock:
            return [sid for sid, s in self._streams.items() if status is None or s.status == status]

    def frame_count(self, stream_id: str) -> int:
        return len(self._frames(stream_id))

    def stats(self) -> Dict[str, int]:
        with self._lock:
            active = sum(1 for s in self._streams.values() if not s.archived)
            archived = len(self._streams) - active
            frames = sum(len(s.frames) for s in self._streams.values())
        return {"streams_total": active + archived, "active": active, "archived": archived, "frames_total": frames}

    # ----------------- Persistence -----------------

    def _frames(self, stream_id: str) -> List[MemoryFrame]:
        with self._lock:
            stream = self._streams.get(stream_id)
            return stream.frames if stream is not None else []

    def _load(self) -> None:
        if self.kv is None:
            return
        try:
            raw = self.kv.get(self.cfg.STREAMS_KEY)
        except Exception as e:
            report("state_load_failed", message=f"{type(e).__name__}: {e}",
                   context={"key": self.cfg.STREAMS_KEY}, sink=self.error_sink, logger=log)
            return
        if not raw:
            return
        try:
            data = json.loads(raw)
            streams = [MemoryStream.from_dict(d) for d in (data.values() if isinstance(data, dict) else data)]
        except (ValueError, TypeError, AttributeError) as e:
            report("state_load_failed", message=f"{type(e).__name__}: {e}",
                   context={"key": self.cfg.STREAMS_KEY}, sink=self.error_sink, logger=log)
            return
        with self._lock:
            for s in streams:
                self._streams[s.id] = s
        log.info("streams_loaded", count=len(streams))

    def _persist(self) -> None:
        with self._lock:
            version = self._version
            payload = json_dumps({sid: s.to_dict() for sid, s in self._streams.items()})
            active = sum(1 for s in self._streams.values() if not s.archived)
            archived = len(self._streams) - active
        set_stream_gauges(active=active, archived=archived)

        if self.kv is None or not self.cfg.PERSIST_ENABLED:
            return
        with self._save_lock:
            if version <= self._saved_version:
                return
            try:
                self.kv.set(self.cfg.STREAMS_KEY, payload)
                self._saved_version = version
            except Exception as e:
                note_persist_failure(self.cfg.STREAMS_KEY)
                report("persistence_failure", message=f"{type(e).__name__}: {e}",
                       context={"key": self.cfg.STREAMS_KEY}, sink=self.error_sink, logger=log)

    def _dispatch_ingest(self, doc: ArchivedDocument) -> None:
        if self.ingest is None:
            return
        if self.offload is not None:
            self.offload.submit(self._run_ingest, doc)
        else:
            self._run_ingest(doc)

    def _run_ingest(self, doc: ArchivedDocument) -> None:
        try:
            self.ingest(doc)
        except Exception as e:
            report("ingestion_failure", message=f"{type(e).__name__}: {e}",
                   context={"stream_id": doc.id}, sink=self.error_sink, logger=log)


__all__ = ["StreamMemory", "StreamArchived", "IngestCallback", "peek_not_found"]
