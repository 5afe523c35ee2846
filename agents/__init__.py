# agents/__init__.py
# Turn dispatch: alternating-role agent turns over a shared idea workspace.

from .dispatcher import TurnDispatcher, parse_turn_response
from .model import AGENT_GOALS, ActionType, AgentAction, AgentGoal, AgentTurn, Idea, IdeaType, Role
from .simulation import Simulation
from .workspace import IdAllocator, apply_action

__all__ = [
    "TurnDispatcher", "parse_turn_response", "Simulation", "IdAllocator", "apply_action",
    "AGENT_GOALS", "ActionType", "AgentAction", "AgentGoal", "AgentTurn", "Idea", "IdeaType", "Role",
]
