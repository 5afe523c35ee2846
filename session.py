# session.py
# Composition root: builds one context-owned set of core services and tears them down together.

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from agents.config import AGENTCFG, AgentConfig
from agents.dispatcher import TurnDispatcher
from agents.model import GoalLike, Idea, as_goal
from agents.simulation import Simulation
from common.broadcast import Broadcaster
from common.errors import ErrorEvent, ErrorSink
from common.workers import BackgroundQueue, InlineQueue
from gateway.base import ReasoningGateway
from gateway.client import StructuredGateway
from gateway.config import GATEWAYCFG, GatewayConfig
from memory.config import MEMCFG, MemoryConfig
from memory.store.base import KeyValueStore
from memory.store.filekv import FileKV
from memory.store.inmem import InMemoryKV
from memory.streams import IngestCallback, StreamArchived, StreamMemory
from observability.log import get_logger
from supervisor.config import SUPCFG, SupervisorConfig
from supervisor.loop import SupervisorLoop
from supervisor.model import SupervisorDecision
from supervisor.policies import MetaPolicyBook
from training.sink import KVTrainingSink

log = get_logger(__name__)


class CoreSession:
    """
    Everything one user context needs, constructed once and passed by reference:

        session = CoreSession(gateway, kv=FileKV("data/kv"))
        sid = session.memory.create_stream("Design a cup")
        sim = session.simulation(sid, "Design a cup", ideas)
        session.supervisor.start(profile, lambda: sid)
        ...
        session.close()

    background=False runs fire-and-forget work inline (deterministic tests).
    """

    def __init__(
        self,
        gateway: ReasoningGateway,
        *,
        kv: Optional[KeyValueStore] = None,
        data_dir: Optional[Union[str, Path]] = None,
        ingest: Optional[IngestCallback] = None,
        record_training: bool = True,
        background: bool = True,
        error_sink: Optional[ErrorSink] = None,
        memory_cfg: MemoryConfig = MEMCFG,
        agent_cfg: AgentConfig = AGENTCFG,
        supervisor_cfg: SupervisorConfig = SUPCFG,
        gateway_cfg: GatewayConfig = GATEWAYCFG,
    ) -> None:
        if kv is None:
            kv = FileKV(Path(data_dir)) if data_dir is not None else InMemoryKV()
        self.kv = kv
        self.errors: List[ErrorEvent] = []
        self._external_sink = error_sink

        if background:
            self.ingest_queue: Any = BackgroundQueue("ingest", maxsize=memory_cfg.INGEST_QUEUE_SIZE,
                                                     workers=memory_cfg.INGEST_WORKERS)
            self.training_queue: Any = BackgroundQueue("training", maxsize=agent_cfg.TRAINING_QUEUE_SIZE)
        else:
            self.ingest_queue = InlineQueue("ingest")
            self.training_queue = InlineQueue("training")

        self.memory_events: Broadcaster[StreamArchived] = Broadcaster("memory", max_log=256,
                                                                     error_sink=self._on_error)
        self.memory = StreamMemory(kv, cfg=memory_cfg, ingest=ingest, offload=self.ingest_queue,
                                   events=self.memory_events, error_sink=self._on_error)

        self.gateway = StructuredGateway(gateway, cfg=gateway_cfg)
        self.training = KVTrainingSink(kv) if record_training else None
        self.dispatcher = TurnDispatcher(self.memory, self.gateway, training_sink=self.training,
                                         offload=self.training_queue, cfg=agent_cfg, error_sink=self._on_error)

        self.decisions: Broadcaster[SupervisorDecision] = Broadcaster("decisions", error_sink=self._on_error)
        self.policies = MetaPolicyBook(kv, key=supervisor_cfg.POLICIES_KEY, error_sink=self._on_error)
        self.supervisor = SupervisorLoop(self.memory, self.gateway, policies=self.policies,
                                         broadcaster=self.decisions, cfg=supervisor_cfg, error_sink=self._on_error)
        self._closed = False
        log.info("session_ready", kv=type(kv).__name__, model=self.gateway.model_name, background=background)

    # ----------------- Conveniences -----------------

    def simulation(self, stream_id: str, goal: GoalLike, ideas: Optional[List[Idea]] = None, **kw: Any) -> Simulation:
        return Simulation(self.dispatcher, stream_id, as_goal(goal), ideas or [], **kw)

    def new_simulation(self, goal: GoalLike, topic: Optional[str] = None, **kw: Any) -> Simulation:
        """Create a stream for `goal` and seed its workspace from `topic` (or the goal label)."""
        agoal = as_goal(goal)
        stream_id = self.memory.create_stream(agoal.label)
        sim = Simulation(self.dispatcher, stream_id, agoal, **kw)
        sim.workspace = self.dispatcher.generate_initial_ideas(topic or agoal.label, allocator=sim.allocator)
        return sim

    def flush(self) -> None:
        """Wait for queued ingestion/training work (best effort)."""
        self.ingest_queue.drain()
        self.training_queue.drain()

    def health(self) -> Dict[str, Any]:
        return {
            "memory": self.memory.stats(),
            "supervisor": self.supervisor.health(),
            "training_examples": len(self.training.all()) if self.training is not None else 0,
            "queues": {
                "ingest": {"pending": self.ingest_queue.pending(), "dropped": self.ingest_queue.dropped},
                "training": {"pending": self.training_queue.pending(), "dropped": self.training_queue.dropped},
            },
            "errors": len(self.errors),
        }

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.supervisor.stop()
        self.ingest_queue.stop(drain=True)
        self.training_queue.stop(drain=True)
        self.gateway.close()
        log.info("session_closed")

    def __enter__(self) -> "CoreSession":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ----------------- Internals -----------------

    def _on_error(self, ev: ErrorEvent) -> None:
        self.errors.append(ev)
        if self._external_sink is not None:
            self._external_sink(ev)


__all__ = ["CoreSession"]
