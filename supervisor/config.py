# supervisor/config.py
# Supervisor loop tunables: cadence, context window, display thresholds, profile checks.

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List

from common.utils import to_float, to_int


@dataclass
class SupervisorConfig:
    INTERVAL_S: float = 45.0              # timer period; a tunable, not a correctness property
    SHORT_TERM_WINDOW: int = 6            # frames of short-term memory per evaluation
    MIN_CONTEXT_CHARS: int = 50           # below this there's nothing worth evaluating
    TEMPERATURE: float = 0.1
    GATEWAY_TIMEOUT_S: float = 30.0

    TOAST_CONFIDENCE_FLOOR: int = 70      # confidence below this always toasts
    DEFAULT_RELEVANT_GOAL: str = "General Alignment"

    # Profile completeness (strictly longer than these counts)
    GOALS_MIN_CHARS: int = 10
    DREAMS_MIN_CHARS: int = 5

    POLICIES_KEY: str = "pratejra_supervisor_meta"
    CORE_VALUES: List[str] = field(default_factory=lambda: [
        "Accuracy > Speed",
        "Transparency > Magic",
        "Security > Convenience",
    ])


def build_from_env() -> SupervisorConfig:
    cfg = SupervisorConfig()
    cfg.INTERVAL_S = to_float(os.getenv("CORE_SUP_INTERVAL_S"), cfg.INTERVAL_S)
    cfg.SHORT_TERM_WINDOW = to_int(os.getenv("CORE_SUP_WINDOW"), cfg.SHORT_TERM_WINDOW)
    cfg.MIN_CONTEXT_CHARS = to_int(os.getenv("CORE_SUP_MIN_CONTEXT"), cfg.MIN_CONTEXT_CHARS)
    cfg.TEMPERATURE = to_float(os.getenv("CORE_SUP_TEMPERATURE"), cfg.TEMPERATURE)
    cfg.GATEWAY_TIMEOUT_S = to_float(os.getenv("CORE_SUP_GATEWAY_TIMEOUT_S"), cfg.GATEWAY_TIMEOUT_S)
    cfg.TOAST_CONFIDENCE_FLOOR = to_int(os.getenv("CORE_SUP_TOAST_FLOOR"), cfg.TOAST_CONFIDENCE_FLOOR)
    cfg.POLICIES_KEY = os.getenv("CORE_SUP_POLICIES_KEY", cfg.POLICIES_KEY)
    return cfg


SUPCFG = build_from_env()
