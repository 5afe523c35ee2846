# agents/dispatcher.py
# Turn dispatcher: one alternating-role agent turn per call against a stream's memory and a workspace.

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from common.errors import ErrorSink, GatewayError, MalformedResponse, error_key_for_exception, report
from gateway.base import GenerateOptions
from gateway.client import StructuredGateway
from memory.models import FrameDraft
from memory.streams import StreamMemory
from observability.log import get_logger
from observability.metrics import note_turn, note_turn_failure
from training.sink import TrainingInput, TrainingSink

from .config import AGENTCFG, AgentConfig
from .model import ActionType, AgentAction, AgentTurn, GoalLike, Idea, IdeaType, Role, as_goal
from .prompts import (
    SEED_SCHEMA,
    SYSTEM_INSTRUCTION_BASE,
    TURN_SCHEMA,
    compose_seed_prompt,
    compose_turn_prompt,
    role_instruction,
)
from .workspace import IdAllocator, apply_action

log = get_logger(__name__)

DEFAULT_THOUGHT = "Processing..."

TurnResult = Tuple[AgentTurn, List[Idea]]


def parse_turn_response(obj: Mapping[str, Any], raw: Optional[str] = None) -> Tuple[str, AgentAction, str]:
    """
    (thought, action, output_content) from a decoded turn reply.
    Missing fields fall back to defaults; an action outside the enum is malformed.
    """
    name = obj.get("action")
    if name is None or name == "":
        kind = ActionType.IDLE
    else:
        try:
            kind = ActionType(str(name).strip().upper())
        except ValueError:
            raise MalformedResponse(f"unknown action {name!r}", raw=raw) from None

    targets = obj.get("targetBlockIds") or []
    if isinstance(targets, str):
        targets = [targets]
    if not isinstance(targets, (list, tuple)):
        raise MalformedResponse("targetBlockIds must be a list", raw=raw)

    stream_ref = obj.get("targetStreamId")
    action = AgentAction.build(
        kind,
        [str(t) for t in targets if t is not None and str(t)],
        target_stream_id=str(stream_ref) if stream_ref else None,
        description=str(name or kind.value),
    )
    thought = str(obj.get("thought") or DEFAULT_THOUGHT)
    output = str(obj.get("outputContent") or "")
    return thought, action, output


class TurnDispatcher:
    """
    Executes one agent turn:
      role by parity -> prompt with memory tiers + workspace -> gateway ->
      optional remote peek -> frame append -> training example -> workspace mutation.

    Gateway/timeout/malformed failures propagate before anything is written.
    No retries here; StructuredGateway owns those.
    """

    def __init__(
        self,
        memory: StreamMemory,
        gateway: StructuredGateway,
        *,
        training_sink: Optional[TrainingSink] = None,
        offload: Any = None,
        cfg: AgentConfig = AGENTCFG,
        error_sink: Optional[ErrorSink] = None,
    ) -> None:
        self.memory = memory
        self.gateway = gateway
        self.training_sink = training_sink
        self.offload = offload
        self.cfg = cfg
        self.error_sink = error_sink

    @property
    def max_turns(self) -> int:
        return int(self.cfg.MAX_TURNS)

    def execute_turn(
        self,
        stream_id: str,
        goal: GoalLike,
        workspace: Sequence[Idea],
        turn_count: int,
        role_prompts: Optional[Mapping[Any, str]] = None,
        *,
        cancel: Any = None,
        allocator: Optional[IdAllocator] = None,
    ) -> Optional[TurnResult]:
        """
        Returns (AgentTurn, new workspace), or None when the simulation is over
        (turn_count >= max_turns) or `cancel` was set while the gateway was busy.
        """
        if turn_count >= self.max_turns:
            log.info("turn_refused_terminal", stream_id=stream_id, turn=turn_count, max_turns=self.max_turns)
            return None
        if cancel is not None and cancel.is_set():
            return None

        agoal = as_goal(goal)
        role = Role.for_turn(turn_count)
        instruction = role_instruction(role, role_prompts)

        short_term = self.memory.short_term(stream_id)
        medium_term = self.memory.medium_term(stream_id)
        prompt = compose_turn_prompt(stream_id, agoal, role, short_term, medium_term, workspace, instruction)
        options = GenerateOptions(
            temperature=self.cfg.TURN_TEMPERATURE,
            system_instruction=SYSTEM_INSTRUCTION_BASE,
            response_schema=TURN_SCHEMA,
        )

        log.debug("turn_thinking", stream_id=stream_id, role=role.value, turn=turn_count)
        try:
            obj, raw = self.gateway.generate_json(prompt, options, timeout_s=self.cfg.GATEWAY_TIMEOUT_S)
            thought, action, output = parse_turn_response(obj, raw)
        except GatewayError as e:
            note_turn_failure(error_key_for_exception(e))
            log.warning("turn_failed", stream_id=stream_id, role=role.value, turn=turn_count,
                        error=type(e).__name__, detail=str(e))
            raise

        if cancel is not None and cancel.is_set():
            log.info("turn_discarded_after_cancel", stream_id=stream_id, turn=turn_count)
            return None

        if action.type is ActionType.READ_STREAM and action.target_stream_id:
            # single hop: the peeked text is data, its own actions are never followed
            output = f"Fetched: {self.memory.share_peek(action.target_stream_id)}"
            thought = f"{thought} [Accessed Remote Stream: {action.target_stream_id}]"

        self.memory.append_frame(stream_id, FrameDraft(
            agent_name=role.value,
            input=f"Turn {turn_count}",
            thought=thought,
            action=action.type.value,
            output=output,
            tags=(action.type.value,),
        ))

        self._emit_training(
            TrainingInput(system=SYSTEM_INSTRUCTION_BASE, user=f"Goal: {agoal.label}. Stream: {stream_id}",
                          context=medium_term),
            raw,
            {"stream_id": stream_id, "turn": turn_count, "role": role.value},
        )

        new_workspace = apply_action(workspace, action, role=role, output_content=output,
                                     allocator=allocator, cfg=self.cfg)
        note_turn(role.value, action.type.value)
        log.info("turn_completed", stream_id=stream_id, role=role.value, turn=turn_count,
                 action=action.type.value, ideas=len(new_workspace))

        turn = AgentTurn(step=turn_count + 1, agent_name=role.value, thought=thought, action=action,
                         output_content=output)
        return turn, new_workspace

    def generate_initial_ideas(self, topic: str, *, allocator: Optional[IdAllocator] = None,
                               rng: Optional[np.random.Generator] = None) -> List[Idea]:
        """
        Seed a workspace: ask for 4-6 concepts about `topic` and lay them out on a
        3-column grid with a little jitter. Gateway failure yields [] (logged).
        """
        options = GenerateOptions(temperature=self.cfg.SEED_TEMPERATURE, response_schema=SEED_SCHEMA)
        try:
            obj, _ = self.gateway.generate_json(compose_seed_prompt(topic), options,
                                                timeout_s=self.cfg.GATEWAY_TIMEOUT_S)
        except GatewayError as e:
            report(error_key_for_exception(e), message=f"seed ideas failed: {e}",
                   context={"topic": topic}, sink=self.error_sink, logger=log)
            return []

        concepts = obj.get("concepts") or []
        if not isinstance(concepts, list):
            return []
        alloc = allocator or IdAllocator()
        gen = rng or np.random.default_rng()
        ideas: List[Idea] = []
        for c in concepts:
            if not isinstance(c, dict) or not c.get("label"):
                continue
            i = len(ideas)
            jitter = gen.uniform(-5.0, 5.0, size=2)
            ideas.append(Idea(
                id=alloc.fresh("init"),
                content=str(c["label"]),
                type=IdeaType.parse(c.get("type")),
                x=20 + (i % 3) * 30 + float(jitter[0]),
                y=20 + (i // 3) * 30 + float(jitter[1]),
            ))
        log.info("workspace_seeded", topic=topic, ideas=len(ideas))
        return ideas

    # ----------------- Internals -----------------

    def _emit_training(self, inp: TrainingInput, raw: str, metadata: Dict[str, Any]) -> None:
        if self.training_sink is None:
            return
        if self.offload is not None:
            self.offload.submit(self._record_training, inp, raw, metadata)
        else:
            self._record_training(inp, raw, metadata)

    def _record_training(self, inp: TrainingInput, raw: str, metadata: Dict[str, Any]) -> None:
        try:
            self.training_sink.record(self.cfg.TRAINING_SOURCE, self.gateway.model_name, inp, raw, metadata)
        except Exception as e:
            report("training_sink_failure", message=f"{type(e).__name__}: {e}",
                   context=metadata, sink=self.error_sink, logger=log)


__all__ = ["TurnDispatcher", "TurnResult", "parse_turn_response", "DEFAULT_THOUGHT"]
