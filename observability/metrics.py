# observability/metrics.py
# Prometheus metrics for the core: memory streams, agent turns, supervisor ticks, gateway calls, background queue.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterable, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

# Private registry so repeated imports in tests never collide with the global default one.
registry = CollectorRegistry()
_server_guard = threading.Lock()
_server_started = False


def _counter(name: str, desc: str, labels: Iterable[str] = ()) -> Counter:
    return Counter(name, desc, list(labels), registry=registry)


def _gauge(name: str, desc: str, labels: Iterable[str] = ()) -> Gauge:
    return Gauge(name, desc, list(labels), registry=registry)


def _histogram(name: str, desc: str, labels: Iterable[str] = (), buckets: Optional[list[float]] = None) -> Histogram:
    if buckets is None:
        # gateway calls are seconds-scale
        buckets = [0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0]
    return Histogram(name, desc, list(labels), buckets=buckets, registry=registry)


# ---------- Memory (namespaced "core_memory_") ----------
streams_created_total   = _counter("core_memory_streams_created_total", "Memory streams created.")
frames_appended_total   = _counter("core_memory_frames_appended_total", "Frames appended to streams.")
frames_dropped_total    = _counter("core_memory_frames_dropped_total", "Frames dropped because the stream was unknown.")
streams_archived_total  = _counter("core_memory_streams_archived_total", "Streams transitioned to archived.")
persist_failures_total  = _counter("core_memory_persist_failures_total", "KV persistence failures.", labels=["key"])
streams_by_status       = _gauge("core_memory_streams", "Streams currently held, by status.", labels=["status"])

# ---------- Agents ----------
turns_total             = _counter("core_agent_turns_total", "Agent turns completed.", labels=["role", "action"])
turn_failures_total     = _counter("core_agent_turn_failures_total", "Agent turns aborted by a gateway failure.", labels=["reason"])
stale_targets_total     = _counter("core_agent_stale_targets_total", "Workspace actions skipped because targets were gone.", labels=["action"])

# ---------- Supervisor ----------
supervisor_ticks_total  = _counter("core_supervisor_ticks_total", "Supervisor ticks by outcome.", labels=["outcome"])
decisions_total         = _counter("core_supervisor_decisions_total", "Supervisor decisions emitted.", labels=["type", "display"])
meta_policies           = _gauge("core_supervisor_meta_policies", "Number of learned meta-policies.")
subscriber_errors_total = _counter("core_broadcast_subscriber_errors_total", "Broadcast handler exceptions isolated.", labels=["channel"])

# ---------- Gateway ----------
gateway_calls_total     = _counter("core_gateway_calls_total", "Reasoning gateway calls by outcome.", labels=["outcome"])
gateway_latency_seconds = _histogram("core_gateway_latency_seconds", "Latency of a reasoning gateway attempt in seconds.")

# ---------- Background queue ----------
offload_submitted_total = _counter("core_offload_submitted_total", "Fire-and-forget jobs accepted.", labels=["queue"])
offload_dropped_total   = _counter("core_offload_dropped_total", "Fire-and-forget jobs dropped (queue full or stopped).", labels=["queue"])
offload_failed_total    = _counter("core_offload_failed_total", "Fire-and-forget jobs that raised.", labels=["queue"])

# ---------- Error events ----------
errors_total            = _counter("core_errors_total", "Soft error events by key and severity.", labels=["key", "severity"])


# ---------- Helpers ----------
def start_metrics_server(port: int = 8008) -> bool:
    """Start Prometheus HTTP server on given port (idempotent). Returns True if serving."""
    global _server_started
    with _server_guard:
        if _server_started:
            return True
        try:
            start_http_server(port, registry=registry)
            _server_started = True
            return True
        except OSError:
            return False


@contextmanager
def timer(histogram_metric: Histogram = gateway_latency_seconds):
    """Context manager: with timer(gateway_latency_seconds): ..."""
    t0 = time.perf_counter()
    try:
        yield
    finally:
        histogram_metric.observe(time.perf_counter() - t0)


def note_stream_created() -> None:
    streams_created_total.inc()


def note_frame(appended: bool) -> None:
    if appended:
        frames_appended_total.inc()
    else:
        frames_dropped_total.inc()


def note_archive() -> None:
    streams_archived_total.inc()


def note_persist_failure(key: str) -> None:
    persist_failures_total.labels(key).inc()


def set_stream_gauges(*, active: int, archived: int) -> None:
    streams_by_status.labels("active").set(int(active))
    streams_by_status.labels("archived").set(int(archived))


def note_turn(role: str, action: str) -> None:
    turns_total.labels(role, action).inc()


def note_turn_failure(reason: str) -> None:
    turn_failures_total.labels(reason).inc()


def note_stale_target(action: str) -> None:
    stale_targets_total.labels(action).inc()


def note_tick(outcome: str) -> None:
    supervisor_ticks_total.labels(outcome).inc()


def note_decision(decision_type: str, display_mode: str) -> None:
    decisions_total.labels(decision_type, display_mode).inc()


def set_policy_count(n: int) -> None:
    meta_policies.set(int(n))


def note_subscriber_error(channel: str) -> None:
    subscriber_errors_total.labels(channel).inc()


def note_gateway(outcome: str, latency_s: Optional[float] = None) -> None:
    gateway_calls_total.labels(outcome).inc()
    if latency_s is not None:
        gateway_latency_seconds.observe(float(latency_s))


def note_offload(queue_name: str, outcome: str) -> None:
    if outcome == "submitted":
        offload_submitted_total.labels(queue_name).inc()
    elif outcome == "dropped":
        offload_dropped_total.labels(queue_name).inc()
    elif outcome == "failed":
        offload_failed_total.labels(queue_name).inc()


def note_error(key: str, severity: int) -> None:
    errors_total.labels(key, str(int(severity))).inc()


def sample(name: str, labels: Optional[dict] = None) -> float:
    """Read a sample value from the private registry (0.0 when absent)."""
    v = registry.get_sample_value(name, labels or {})
    return float(v or 0.0)


def dump_text() -> bytes:
    """Current metrics in Prometheus text format."""
    return generate_latest(registry)
