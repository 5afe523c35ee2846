# gateway/config.py
# Timeouts and retry policy for reasoning gateway calls.

from __future__ import annotations

import os
from dataclasses import dataclass

from common.utils import to_float, to_int


@dataclass
class GatewayConfig:
    TIMEOUT_S: float = 30.0          # per attempt
    RETRIES: int = 3                 # extra attempts after the first
    BACKOFF_S: float = 1.0           # first retry delay, doubles each time
    BACKOFF_FACTOR: float = 2.0


def build_from_env() -> GatewayConfig:
    cfg = GatewayConfig()
    cfg.TIMEOUT_S = to_float(os.getenv("CORE_GATEWAY_TIMEOUT_S"), cfg.TIMEOUT_S)
    cfg.RETRIES = to_int(os.getenv("CORE_GATEWAY_RETRIES"), cfg.RETRIES)
    cfg.BACKOFF_S = to_float(os.getenv("CORE_GATEWAY_BACKOFF_S"), cfg.BACKOFF_S)
    cfg.BACKOFF_FACTOR = to_float(os.getenv("CORE_GATEWAY_BACKOFF_FACTOR"), cfg.BACKOFF_FACTOR)
    return cfg


GATEWAYCFG = build_from_env()
