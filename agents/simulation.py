# agents/simulation.py
# Per-simulation driver: owns the workspace, turn counter, history and cancel flag.

from __future__ import annotations

import threading
from typing import Any, List, Mapping, Optional, Sequence

from common.errors import GatewayError
from observability.log import get_logger

from .dispatcher import TurnDispatcher
from .model import AgentTurn, GoalLike, Idea, as_goal
from .workspace import IdAllocator

log = get_logger(__name__)


class Simulation:
    """
    One simulation = one stream + one workspace. Not shared across threads
    except for cancel(), which any thread may call.

        sim = Simulation(dispatcher, stream_id, goal, ideas)
        while not sim.finished:
            sim.step()
    """

    def __init__(
        self,
        dispatcher: TurnDispatcher,
        stream_id: str,
        goal: GoalLike,
        ideas: Sequence[Idea] = (),
        *,
        role_prompts: Optional[Mapping[Any, str]] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.stream_id = stream_id
        self.goal = as_goal(goal)
        self.role_prompts = role_prompts
        self.workspace: List[Idea] = list(ideas)
        self.turn_count = 0
        self.history: List[AgentTurn] = []
        self.allocator = IdAllocator(i.id for i in self.workspace)
        self._cancel = threading.Event()
        self.last_error: Optional[BaseException] = None

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def finished(self) -> bool:
        return self.cancelled or self.turn_count >= self.dispatcher.max_turns

    def cancel(self) -> None:
        """Immediate: nothing is appended after this returns, even by an in-flight turn."""
        self._cancel.set()
        log.info("simulation_cancelled", stream_id=self.stream_id, turn=self.turn_count)

    def step(self) -> Optional[AgentTurn]:
        """
        Run one turn. Returns the AgentTurn, or None once finished/cancelled.
        Gateway errors propagate; the turn counter does not advance on failure.
        """
        if self.finished:
            return None
        result = self.dispatcher.execute_turn(
            self.stream_id,
            self.goal,
            self.workspace,
            self.turn_count,
            self.role_prompts,
            cancel=self._cancel,
            allocator=self.allocator,
        )
        if result is None:
            return None
        turn, workspace = result
        self.workspace = workspace
        self.history.append(turn)
        self.turn_count += 1
        return turn

    def run(self, *, halt_on_error: bool = True) -> List[AgentTurn]:
        """
        Drive the simulation to completion. With halt_on_error=False a failed turn
        is recorded in last_error and the loop stops quietly instead of raising.
        """
        produced: List[AgentTurn] = []
        while not self.finished:
            try:
                turn = self.step()
            except GatewayError as e:
                self.last_error = e
                log.warning("simulation_halted", stream_id=self.stream_id, turn=self.turn_count, error=str(e))
                if halt_on_error:
                    raise
                break
            if turn is None:
                break
            produced.append(turn)
        log.info("simulation_finished", stream_id=self.stream_id, turns=self.turn_count,
                 ideas=len(self.workspace), cancelled=self.cancelled)
        return produced


__all__ = ["Simulation"]
