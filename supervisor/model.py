# supervisor/model.py
# Decisions, meta-policies and the user profile the supervisor evaluates against.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from common.utils import gen_id, now_ms


class DecisionType(str, Enum):
    INHIBIT = "inhibit"
    ALLOW = "allow"
    REQUEST_GUIDANCE = "request_guidance"


class DisplayMode(str, Enum):
    TOAST = "toast"
    WIDGET = "widget"


def derive_display_mode(decision_type: DecisionType, confidence: int, floor: int = 70) -> DisplayMode:
    """Interrupt for inhibit/guidance or low confidence; otherwise the passive widget."""
    if decision_type in (DecisionType.INHIBIT, DecisionType.REQUEST_GUIDANCE):
        return DisplayMode.TOAST
    if confidence < floor:
        return DisplayMode.TOAST
    return DisplayMode.WIDGET


def clamp_confidence(value: Any) -> int:
    try:
        n = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, n))


@dataclass(frozen=True)
class MetaPolicy:
    id: str
    rule: str
    created_context: str = ""
    weight: int = 1              # reserved; nothing reads it

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "rule": self.rule, "createdContext": self.created_context, "weight": self.weight}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MetaPolicy":
        return cls(
            id=str(d.get("id") or gen_id("pol")),
            rule=str(d.get("rule") or ""),
            created_context=str(d.get("createdContext") or d.get("created_context") or ""),
            weight=int(d.get("weight") or 1),
        )


@dataclass(frozen=True)
class SupervisorDecision:
    id: str
    timestamp: int
    type: DecisionType
    confidence_score: int
    simulation_result: str
    reasoning: str
    user_message: str
    display_mode: DisplayMode
    relevant_goal: str = "General Alignment"
    policy_update: Optional[str] = None
    action_label: Optional[str] = None
    action_link: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "confidenceScore": self.confidence_score,
            "simulationResult": self.simulation_result,
            "reasoning": self.reasoning,
            "userMessage": self.user_message,
            "relevantGoal": self.relevant_goal,
            "displayMode": self.display_mode.value,
        }
        for k, v in (("policyUpdate", self.policy_update), ("actionLabel", self.action_label),
                     ("actionLink", self.action_link)):
            if v is not None:
                d[k] = v
        return d


@dataclass
class UserProfile:
    goals: str = ""
    dreams: str = ""
    values: List[str] = field(default_factory=list)


def new_decision_id(prefix: str = "sup") -> str:
    return f"{prefix}-{now_ms()}-{gen_id('d')[-6:]}"


__all__ = [
    "DecisionType", "DisplayMode", "derive_display_mode", "clamp_confidence",
    "MetaPolicy", "SupervisorDecision", "UserProfile", "new_decision_id",
]
