# agents/model.py
# Core dataclasses and enums for agent simulations (Role, ActionType, Idea, AgentAction, AgentTurn, AgentGoal).

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


class Role(str, Enum):
    COORDINATOR = "Coordinator"
    CRITIC = "Critic"

    @classmethod
    def for_turn(cls, turn_count: int) -> "Role":
        return cls.COORDINATOR if turn_count % 2 == 0 else cls.CRITIC


class ActionType(str, Enum):
    MERGE = "MERGE"
    EXPLODE = "EXPLODE"
    SHAKE = "SHAKE"
    READ_STREAM = "READ_STREAM"
    IDLE = "IDLE"


class IdeaType(str, Enum):
    CONCEPT = "concept"
    CONSTRAINT = "constraint"
    DATA = "data"
    INSIGHT = "insight"
    COMPONENT = "component"

    @classmethod
    def parse(cls, value: Any, default: Optional["IdeaType"] = None) -> "IdeaType":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default or cls.CONCEPT


@dataclass(frozen=True)
class Idea:
    """
    One workspace unit. x/y/shape/color/scale/strength are placement payload:
    carried through untouched unless an action computes new values.
    """
    id: str
    content: str
    type: IdeaType = IdeaType.CONCEPT
    x: float = 0.0
    y: float = 0.0
    shape: str = "square"
    color: str = "#10b981"
    scale: float = 1.0
    strength: float = 1.0
    extra: Tuple[Tuple[str, Any], ...] = ()

    def evolve(self, **changes: Any) -> "Idea":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "content": self.content,
            "type": self.type.value,
            "x": self.x,
            "y": self.y,
            "shape": self.shape,
            "color": self.color,
            "scale": self.scale,
            "strength": self.strength,
        }
        d.update(dict(self.extra))
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Idea":
        known = {"id", "content", "type", "x", "y", "shape", "color", "scale", "strength"}
        return cls(
            id=str(d["id"]),
            content=str(d.get("content") or ""),
            type=IdeaType.parse(d.get("type")),
            x=float(d.get("x") or 0.0),
            y=float(d.get("y") or 0.0),
            shape=str(d.get("shape") or "square"),
            color=str(d.get("color") or "#10b981"),
            scale=float(d.get("scale") if d.get("scale") is not None else 1.0),
            strength=float(d.get("strength") if d.get("strength") is not None else 1.0),
            extra=tuple(sorted((k, v) for k, v in d.items() if k not in known)),
        )


@dataclass(frozen=True)
class AgentAction:
    type: ActionType
    target_ids: Tuple[str, ...] = ()
    target_stream_id: Optional[str] = None
    description: str = ""

    @classmethod
    def build(cls, type: ActionType, target_ids: Sequence[str] = (), *,
              target_stream_id: Optional[str] = None, description: str = "") -> "AgentAction":
        # ordered set: keep first occurrence
        seen: Dict[str, None] = {}
        for t in target_ids or ():
            seen.setdefault(str(t), None)
        return cls(type=type, target_ids=tuple(seen), target_stream_id=target_stream_id or None,
                   description=description or type.value)


@dataclass
class AgentTurn:
    step: int
    agent_name: str
    thought: str
    action: AgentAction
    output_content: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "agentName": self.agent_name,
            "thought": self.thought,
            "action": {
                "type": self.action.type.value,
                "targetBlockIds": list(self.action.target_ids),
                "targetStreamId": self.action.target_stream_id,
                "description": self.action.description,
            },
            "outputContent": self.output_content,
        }


@dataclass
class AgentGoal:
    id: str
    type: str
    label: str
    description: str
    system_prompt: str = ""

    @classmethod
    def from_text(cls, text: str) -> "AgentGoal":
        return cls(id="custom", type="custom", label=text, description=text)

    def headline(self) -> str:
        return f"{self.type} - {self.description}"


GoalLike = Union[str, AgentGoal]


def as_goal(goal: GoalLike) -> AgentGoal:
    return goal if isinstance(goal, AgentGoal) else AgentGoal.from_text(str(goal or ""))


AGENT_GOALS: List[AgentGoal] = [
    AgentGoal(
        id="g1",
        type="synthesis",
        label="Synthesis Engine",
        description="Combine disparate blocks into a unified theory.",
        system_prompt=(
            "Focus on finding commonalities, patterns, and unifying principles. Look for ways to combine "
            "ideas that create new insights beyond the sum of parts. Identify complementary aspects and "
            "build coherent frameworks."
        ),
    ),
    AgentGoal(
        id="g2",
        type="creation",
        label="Creative Forge",
        description="Use blocks as inspiration to generate new ideas.",
        system_prompt=(
            "Be speculative and imaginative. Use existing blocks as springboards for novel concepts. "
            "Explore \"what if\" scenarios, alternative perspectives, and unconventional connections. "
            "Generate ideas that extend beyond current boundaries."
        ),
    ),
    AgentGoal(
        id="g3",
        type="questioning",
        label="Socratic Critic",
        description="Break blocks apart to find logical gaps.",
        system_prompt=(
            "Be critical and thorough. Question assumptions, identify logical gaps, expose contradictions, "
            "and challenge weak reasoning. Use Socratic questioning to reveal hidden flaws. Break down "
            "complex ideas to test their foundations."
        ),
    ),
]


__all__ = [
    "Role", "ActionType", "IdeaType", "Idea", "AgentAction", "AgentTurn",
    "AgentGoal", "GoalLike", "as_goal", "AGENT_GOALS",
]
