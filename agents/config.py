# agents/config.py
# Turn dispatch settings: turn bound, sampling, role colours, training queue.

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict

from common.utils import to_float, to_int


@dataclass
class AgentConfig:
    MAX_TURNS: int = 10
    TURN_TEMPERATURE: float = 0.5
    SEED_TEMPERATURE: float = 0.7
    GATEWAY_TIMEOUT_S: float = 60.0

    # Workspace geometry
    EXPLODE_OFFSET: float = 5.0
    EXPLODE_SCALE: float = 0.8
    MERGE_SCALE: float = 1.2

    # Marker colours for SHAKE/IDLE by role
    ROLE_COLORS: Dict[str, str] = field(default_factory=lambda: {
        "Coordinator": "#3b82f6",
        "Critic": "#fbbf24",
    })

    # Fire-and-forget training examples
    TRAINING_QUEUE_SIZE: int = 256
    TRAINING_SOURCE: str = "agent_simulation"


def build_from_env() -> AgentConfig:
    cfg = AgentConfig()
    cfg.MAX_TURNS = to_int(os.getenv("CORE_AGENT_MAX_TURNS"), cfg.MAX_TURNS)
    cfg.TURN_TEMPERATURE = to_float(os.getenv("CORE_AGENT_TEMPERATURE"), cfg.TURN_TEMPERATURE)
    cfg.SEED_TEMPERATURE = to_float(os.getenv("CORE_AGENT_SEED_TEMPERATURE"), cfg.SEED_TEMPERATURE)
    cfg.GATEWAY_TIMEOUT_S = to_float(os.getenv("CORE_AGENT_GATEWAY_TIMEOUT_S"), cfg.GATEWAY_TIMEOUT_S)
    cfg.TRAINING_QUEUE_SIZE = to_int(os.getenv("CORE_AGENT_TRAINING_QUEUE"), cfg.TRAINING_QUEUE_SIZE)
    return cfg


AGENTCFG = build_from_env()
