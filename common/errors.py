# common/errors.py
# Exception hierarchy for hard failures plus ErrorEvent records for soft failures (logged, counted, never raised).

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, Optional

from observability.log import get_logger
from observability.metrics import note_error

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Hard failures: abort the current turn/tick, never leave partial state behind
# ---------------------------------------------------------------------------

class CoreError(Exception):
    """Base class for errors raised by the core."""


class GatewayError(CoreError):
    """Reasoning gateway failed (network, provider error, exhausted retries)."""


class GatewayTimeout(GatewayError):
    """Gateway call exceeded its deadline; the in-flight call's result is discarded."""


class GatewayAuthError(GatewayError):
    """Credentials rejected; retrying cannot help."""


class MalformedResponse(GatewayError):
    """Gateway returned text that is not the JSON object the schema asked for."""

    def __init__(self, message: str, *, raw: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw = raw


# ---------------------------------------------------------------------------
# Soft failures
# ---------------------------------------------------------------------------

class Severity(IntEnum):
    """1 = worst, 3 = least severe."""
    SEV1 = 1
    SEV2 = 2
    SEV3 = 3


SEVERITY_BY_KEY: Dict[str, int] = {
    # Sev1: local state integrity
    "state_load_failed": 1,

    # Sev2: availability
    "gateway_timeout": 2,
    "gateway_failure": 2,
    "persistence_failure": 2,
    "ingestion_failure": 2,
    "unknown_stream": 2,

    # Sev3: expected, recoverable
    "malformed_response": 3,
    "stale_workspace_target": 3,
    "subscriber_failure": 3,
    "training_sink_failure": 3,
    "offload_dropped": 3,
    "tick_dropped_busy": 3,
}


@dataclass
class ErrorEvent:
    """
    A single soft-error occurrence.

      - key: stable identifier (see SEVERITY_BY_KEY)
      - severity: 1 (worst), 2, or 3
      - message / context: human text and structured extras
      - ts: monotonic seconds
    """
    key: str
    severity: int
    message: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        try:
            sev = int(self.severity)
        except (TypeError, ValueError):
            sev = 1
        if sev not in (1, 2, 3):
            sev = 1
        self.severity = sev


ErrorSink = Callable[[ErrorEvent], None]


def make_event_from_key(key: str, *, message: Optional[str] = None,
                        context: Optional[Dict[str, Any]] = None) -> ErrorEvent:
    """Unknown keys default to worst (1) so they don't get ignored."""
    return ErrorEvent(key=key, severity=SEVERITY_BY_KEY.get(key, 1), message=message, context=dict(context or {}))


def report(key: str, *, message: Optional[str] = None, context: Optional[Dict[str, Any]] = None,
           sink: Optional[ErrorSink] = None, logger=None) -> ErrorEvent:
    """
    Log + count a soft error and forward it to an optional sink.
    A failing sink is logged and otherwise ignored.
    """
    ev = make_event_from_key(key, message=message, context=context)
    lg = logger or log
    method = lg.error if ev.severity == 1 else lg.warning if ev.severity == 2 else lg.info
    method(key, severity=ev.severity, detail=message, **ev.context)
    note_error(ev.key, ev.severity)
    if sink is not None:
        try:
            sink(ev)
        except Exception:
            lg.exception("error_sink_failed", key=key)
    return ev


def severity_for_exception(exc: BaseException) -> int:
    if isinstance(exc, (GatewayTimeout, GatewayAuthError)):
        return int(Severity.SEV2)
    if isinstance(exc, MalformedResponse):
        return int(Severity.SEV3)
    if isinstance(exc, GatewayError):
        return int(Severity.SEV2)
    return int(Severity.SEV1)


def error_key_for_exception(exc: BaseException) -> str:
    if isinstance(exc, GatewayTimeout):
        return "gateway_timeout"
    if isinstance(exc, MalformedResponse):
        return "malformed_response"
    return "gateway_failure"


__all__ = [
    "CoreError", "GatewayError", "GatewayTimeout", "GatewayAuthError", "MalformedResponse",
    "Severity", "SEVERITY_BY_KEY", "ErrorEvent", "ErrorSink",
    "make_event_from_key", "report", "severity_for_exception", "error_key_for_exception",
]
