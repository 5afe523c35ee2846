# supervisor/__init__.py
# Supervisory control: single-flight evaluation loop, meta-policies, decisions.

from .loop import SupervisorLoop, build_decision
from .model import DecisionType, DisplayMode, MetaPolicy, SupervisorDecision, UserProfile, derive_display_mode
from .policies import MetaPolicyBook

__all__ = [
    "SupervisorLoop", "build_decision", "MetaPolicyBook",
    "DecisionType", "DisplayMode", "MetaPolicy", "SupervisorDecision", "UserProfile", "derive_display_mode",
]
