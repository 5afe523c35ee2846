# memory/models.py
# Core dataclasses for agent memory: MemoryStream, MemoryFrame, FrameDraft, ArchivedDocument.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from common.utils import gen_id, now_ms

__all__ = ["StreamStatus", "MemoryFrame", "FrameDraft", "MemoryStream", "ArchivedDocument", "USER_AGENT"]

# Synthetic role for frames injected from outside the dispatcher
USER_AGENT = "User"


class StreamStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


# -------------------------
# MemoryFrame: one logged turn
# -------------------------
@dataclass(frozen=True)
class MemoryFrame:
    """
    Immutable record of one turn inside a stream.
    - agent_name: role that produced it ("Coordinator", "Critic", or "User")
    - action: the action tag as text (e.g. "MERGE"), kept textual for retrieval
    - tags: retrieval hints only
    """
    id: str
    stream_id: str
    timestamp: int
    agent_name: str
    input: str
    thought: str
    action: str
    output: str
    tags: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "streamId": self.stream_id,
            "timestamp": self.timestamp,
            "agentName": self.agent_name,
            "input": self.input,
            "thought": self.thought,
            "action": self.action,
            "output": self.output,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MemoryFrame":
        return cls(
            id=str(d.get("id") or gen_id("mem")),
            stream_id=str(d.get("streamId") or d.get("stream_id") or ""),
            timestamp=int(d.get("timestamp") or 0),
            agent_name=str(d.get("agentName") or d.get("agent_name") or ""),
            input=str(d.get("input") or ""),
            thought=str(d.get("thought") or ""),
            action=str(d.get("action") or ""),
            output=str(d.get("output") or ""),
            tags=tuple(str(t) for t in (d.get("tags") or [])),
        )


@dataclass
class FrameDraft:
    """What callers hand to append_frame(); the store stamps id/stream/timestamp."""
    agent_name: str
    input: str = ""
    thought: str = ""
    action: str = ""
    output: str = ""
    tags: Iterable[str] = field(default_factory=tuple)

    def seal(self, stream_id: str) -> MemoryFrame:
        return MemoryFrame(
            id=gen_id("mem"),
            stream_id=stream_id,
            timestamp=now_ms(),
            agent_name=self.agent_name or USER_AGENT,
            input=self.input or "",
            thought=self.thought or "",
            action=self.action or "",
            output=self.output or "",
            tags=tuple(str(t) for t in (self.tags or ())),
        )


# -------------------------
# MemoryStream: one isolated simulation run
# -------------------------
@dataclass
class MemoryStream:
    id: str
    goal: str
    status: StreamStatus = StreamStatus.ACTIVE
    frames: List[MemoryFrame] = field(default_factory=list)
    started_at: int = field(default_factory=now_ms)

    @classmethod
    def new(cls, goal: str) -> "MemoryStream":
        return cls(id=gen_id("stream"), goal=goal or "")

    @property
    def archived(self) -> bool:
        return self.status == StreamStatus.ARCHIVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "streamId": self.id,
            "startedAt": self.started_at,
            "goal": self.goal,
            "status": self.status.value,
            "frames": [f.to_dict() for f in self.frames],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MemoryStream":
        try:
            status = StreamStatus(str(d.get("status") or "active").lower())
        except ValueError:
            status = StreamStatus.ACTIVE
        return cls(
            id=str(d.get("streamId") or d.get("id")),
            goal=str(d.get("goal") or ""),
            status=status,
            frames=[MemoryFrame.from_dict(f) for f in (d.get("frames") or [])],
            started_at=int(d.get("startedAt") or d.get("started_at") or now_ms()),
        )


# -------------------------
# ArchivedDocument: payload for downstream long-term indexing
# -------------------------
@dataclass
class ArchivedDocument:
    id: str
    title: str
    body: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    archived_at: int = field(default_factory=now_ms)
    goal: Optional[str] = None
