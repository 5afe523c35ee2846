# agents/workspace.py
# Workspace mutation rules: one exhaustive branch per ActionType, never mutates its input.

from __future__ import annotations

import itertools
import threading
from typing import Iterable, List, Optional, Sequence, Set

import numpy as np

from observability.log import get_logger
from observability.metrics import note_stale_target

from .config import AGENTCFG, AgentConfig
from .model import ActionType, AgentAction, Idea, IdeaType, Role

log = get_logger(__name__)

MERGE_FALLBACK = "Synthesis"
MERGE_SHAPE = "hexagon"
MERGE_COLOR = "#8b5cf6"


class IdAllocator:
    """
    Hands out idea ids that were never seen in this session.
    Every id passed through observe() or returned by fresh()/derive() is burned.
    """

    def __init__(self, seen: Iterable[str] = ()) -> None:
        self._used: Set[str] = set(seen)
        self._seq = itertools.count(1)
        self._mu = threading.Lock()

    def observe(self, ids: Iterable[str]) -> None:
        with self._mu:
            self._used.update(ids)

    def fresh(self, prefix: str = "idea") -> str:
        with self._mu:
            while True:
                candidate = f"{prefix}-{next(self._seq)}"
                if candidate not in self._used:
                    self._used.add(candidate)
                    return candidate

    def derive(self, base: str, suffix: str) -> str:
        """`{base}-{suffix}`, or a numbered variant if that was already used."""
        with self._mu:
            candidate = f"{base}-{suffix}"
            n = 2
            while candidate in self._used:
                candidate = f"{base}-{suffix}{n}"
                n += 1
            self._used.add(candidate)
            return candidate

    def __contains__(self, idea_id: str) -> bool:
        with self._mu:
            return idea_id in self._used


def _live_targets(ideas: Sequence[Idea], target_ids: Sequence[str]) -> List[Idea]:
    wanted = set(target_ids)
    return [i for i in ideas if i.id in wanted]


def _skip(action: AgentAction, reason: str, live: int) -> None:
    note_stale_target(action.type.value)
    log.debug("workspace_action_skipped", action=action.type.value, reason=reason,
              targets=list(action.target_ids), live=live)


def apply_action(
    ideas: Sequence[Idea],
    action: AgentAction,
    *,
    role: Role,
    output_content: str = "",
    allocator: Optional[IdAllocator] = None,
    cfg: AgentConfig = AGENTCFG,
) -> List[Idea]:
    """
    Returns the next workspace for `action` applied to `ideas`.

    MERGE       >= 2 live targets: targets replaced by one insight at their centroid
    EXPLODE     exactly 1 live target: replaced by two offset halves
    SHAKE/IDLE  live targets recoloured with the acting role's marker
    READ_STREAM no change

    Targets that no longer exist are skipped; an action with too few live targets
    returns the workspace unchanged.
    """
    current = list(ideas)
    alloc = allocator if allocator is not None else IdAllocator(i.id for i in current)
    alloc.observe(i.id for i in current)
    kind = action.type

    if kind is ActionType.MERGE:
        targets = _live_targets(current, action.target_ids)
        if len(targets) < 2:
            _skip(action, "merge_needs_two_live_targets", len(targets))
            return current
        coords = np.array([[t.x, t.y] for t in targets], dtype=float)
        cx, cy = coords.mean(axis=0)
        consumed = {t.id for t in targets}
        merged = Idea(
            id=alloc.fresh("merged"),
            content=output_content or MERGE_FALLBACK,
            type=IdeaType.INSIGHT,
            x=float(cx),
            y=float(cy),
            shape=MERGE_SHAPE,
            color=MERGE_COLOR,
            scale=cfg.MERGE_SCALE,
        )
        return [i for i in current if i.id not in consumed] + [merged]

    elif kind is ActionType.EXPLODE:
        targets = _live_targets(current, action.target_ids)
        if len(action.target_ids) != 1 or len(targets) != 1:
            _skip(action, "explode_needs_one_live_target", len(targets))
            return current
        target = targets[0]
        off = cfg.EXPLODE_OFFSET
        part_a = target.evolve(id=alloc.derive(target.id, "a"), x=target.x - off, y=target.y - off,
                               scale=cfg.EXPLODE_SCALE, content="Part A")
        part_b = target.evolve(id=alloc.derive(target.id, "b"), x=target.x + off, y=target.y + off,
                               scale=cfg.EXPLODE_SCALE, content="Part B")
        return [i for i in current if i.id != target.id] + [part_a, part_b]

    elif kind is ActionType.SHAKE or kind is ActionType.IDLE:
        wanted = set(action.target_ids)
        if not wanted:
            return current
        color = cfg.ROLE_COLORS.get(role.value, cfg.ROLE_COLORS[Role.COORDINATOR.value])
        return [i.evolve(color=color) if i.id in wanted else i for i in current]

    elif kind is ActionType.READ_STREAM:
        return current

    raise ValueError(f"unhandled action type: {kind!r}")


__all__ = ["IdAllocator", "apply_action", "MERGE_FALLBACK"]
