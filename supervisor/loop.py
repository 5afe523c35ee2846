# supervisor/loop.py
# Single-flight supervisory loop: periodically evaluates a stream's recent activity, emits decisions, learns policies.

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from common.broadcast import Broadcaster
from common.errors import ErrorSink, GatewayError, MalformedResponse, error_key_for_exception, report
from common.utils import now_ms
from gateway.base import GenerateOptions
from gateway.client import StructuredGateway
from memory.streams import StreamMemory
from observability.log import get_logger
from observability.metrics import note_decision, note_tick

from .config import SUPCFG, SupervisorConfig
from .model import (
    DecisionType,
    DisplayMode,
    MetaPolicy,
    SupervisorDecision,
    UserProfile,
    clamp_confidence,
    derive_display_mode,
    new_decision_id,
)
from .policies import MetaPolicyBook
from .prompts import DECISION_SCHEMA, compose_evaluation_prompt

log = get_logger(__name__)

StreamIdProvider = Callable[[], Optional[str]]

PROFILE_ACTION_LINK = "MY_PROFILE"


def build_decision(obj: Dict[str, Any], *, floor: int, default_goal: str,
                   raw: Optional[str] = None) -> SupervisorDecision:
    """Decision from a decoded gateway reply. display_mode is always derived here."""
    try:
        dtype = DecisionType(str(obj.get("type") or "").strip().lower())
    except ValueError:
        raise MalformedResponse(f"unknown decision type {obj.get('type')!r}", raw=raw) from None
    confidence = clamp_confidence(obj.get("confidenceScore"))
    policy = obj.get("newPolicy")
    return SupervisorDecision(
        id=new_decision_id(),
        timestamp=now_ms(),
        type=dtype,
        confidence_score=confidence,
        simulation_result=str(obj.get("simulationResult") or ""),
        reasoning=str(obj.get("internalReasoning") or ""),
        user_message=str(obj.get("userMessage") or ""),
        relevant_goal=str(obj.get("relevantGoal") or default_goal),
        policy_update=str(policy) if policy else None,
        display_mode=derive_display_mode(dtype, confidence, floor),
    )


class SupervisorLoop:
    """
    Background evaluator for one user context.

      - tick() is single-flight: a tick that finds another one running is dropped
      - gateway failures are logged only; no decision is synthesized
      - start() re-arms (replaces) the timer; stop() disarms it immediately and
        any in-flight result is discarded via an epoch check
      - never touches a workspace; reads memory, writes policies and decisions
    """

    def __init__(
        self,
        memory: StreamMemory,
        gateway: StructuredGateway,
        *,
        policies: Optional[MetaPolicyBook] = None,
        broadcaster: Optional[Broadcaster[SupervisorDecision]] = None,
        cfg: SupervisorConfig = SUPCFG,
        error_sink: Optional[ErrorSink] = None,
    ) -> None:
        self.memory = memory
        self.gateway = gateway
        self.cfg = cfg
        self.error_sink = error_sink
        self.policy_book = policies if policies is not None else MetaPolicyBook(key=cfg.POLICIES_KEY, error_sink=error_sink)
        self.broadcaster = broadcaster if broadcaster is not None else Broadcaster("decisions", error_sink=error_sink)

        self._guard = threading.Lock()        # single-flight; acquired non-blocking
        self._state = threading.Lock()
        self._commit = threading.RLock()     # held while a tick result is applied
        self._epoch = 0
        self._profile = UserProfile()
        self._profile_checked = False
        self._stop_evt: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

        self._stats = {"ticks": 0, "decisions": 0, "dropped_busy": 0, "skipped": 0, "failed": 0, "discarded": 0}
        self._last_error: Optional[str] = None
        self._last_tick_ms: Optional[int] = None

    # ----------------- Public API -----------------

    @property
    def is_processing(self) -> bool:
        return self._guard.locked()

    @property
    def running(self) -> bool:
        with self._state:
            return self._stop_evt is not None and not self._stop_evt.is_set()

    def tick(self, stream_id: str, profile: Optional[UserProfile] = None) -> Optional[SupervisorDecision]:
        with self._state:
            epoch = self._epoch
        return self._tick(stream_id, profile, epoch)

    def check_profile_completeness(self, profile: UserProfile) -> Optional[SupervisorDecision]:
        """
        One-shot per loop instance, no gateway call. Emits a guidance toast when
        goals or dreams are too thin to align against. Either thin field is
        enough to nudge; the profile passes only when both clear their minimums.
        """
        with self._state:
            if self._profile_checked:
                return None
            self._profile_checked = True

        has_goals = len(profile.goals or "") > self.cfg.GOALS_MIN_CHARS
        has_dreams = len(profile.dreams or "") > self.cfg.DREAMS_MIN_CHARS
        if has_goals and has_dreams:
            return None

        decision = SupervisorDecision(
            id=new_decision_id("sup-prof"),
            timestamp=now_ms(),
            type=DecisionType.REQUEST_GUIDANCE,
            confidence_score=100,
            simulation_result="Without goals, system drift is inevitable.",
            reasoning="Profile is incomplete.",
            user_message=(
                "I notice you haven't set concrete Goals or Dreams. "
                "Defining them helps me align my inhibitory control."
            ),
            relevant_goal="System Configuration",
            display_mode=DisplayMode.TOAST,
            action_label="Update Profile",
            action_link=PROFILE_ACTION_LINK,
        )
        log.info("profile_incomplete", has_goals=has_goals, has_dreams=has_dreams)
        self._emit(decision)
        return decision

    def start(self, profile: UserProfile, stream_id_provider: StreamIdProvider) -> None:
        """Arm (or re-arm) the timer: profile check once, one immediate tick, then every INTERVAL_S."""
        stop_evt = threading.Event()
        with self._commit, self._state:
            if self._stop_evt is not None:
                self._stop_evt.set()
            self._epoch += 1
            epoch = self._epoch
            self._profile = profile
            self._stop_evt = stop_evt
            self._thread = threading.Thread(
                target=self._run, args=(epoch, stop_evt, stream_id_provider),
                name=f"SupervisorLoop-{epoch}", daemon=True,
            )
            thread = self._thread

        self.check_profile_completeness(profile)
        thread.start()
        log.info("supervisor_started", epoch=epoch, interval_s=self.cfg.INTERVAL_S)

    def stop(self) -> None:
        """Disarm immediately. Does not wait for an in-flight gateway call; join() does."""
        with self._commit, self._state:
            if self._stop_evt is None:
                return
            self._stop_evt.set()
            self._stop_evt = None
            self._epoch += 1
            epoch = self._epoch
        log.info("supervisor_stopped", epoch=epoch)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the most recent loop thread, including one stop() already disarmed."""
        with self._state:
            t = self._thread
        if t is not None:
            t.join(timeout)

    def subscribe(self, handler: Callable[[List[SupervisorDecision]], None]) -> Callable[[], None]:
        return self.broadcaster.subscribe(handler)

    def history(self) -> List[SupervisorDecision]:
        return self.broadcaster.history()

    def policies(self) -> List[MetaPolicy]:
        return self.policy_book.all()

    def health(self) -> Dict[str, Any]:
        with self._state:
            stats = dict(self._stats)
            epoch = self._epoch
            last_error = self._last_error
            last_tick = self._last_tick_ms
        return {
            "running": self.running,
            "processing": self.is_processing,
            "epoch": epoch,
            "policies": len(self.policy_book),
            "decisions_logged": len(self.broadcaster.history()),
            "last_tick_ms": last_tick,
            "last_error": last_error,
            **stats,
        }

    # ----------------- Internals -----------------

    def _run(self, epoch: int, stop_evt: threading.Event, provider: StreamIdProvider) -> None:
        while not stop_evt.is_set():
            try:
                stream_id = provider()
                if stream_id:
                    self._tick(stream_id, None, epoch)
            except Exception as e:
                with self._state:
                    self._last_error = f"{type(e).__name__}: {e}"
                log.exception("supervisor_loop_error", epoch=epoch)
            stop_evt.wait(timeout=self.cfg.INTERVAL_S)

    def _tick(self, stream_id: str, profile: Optional[UserProfile], epoch: int) -> Optional[SupervisorDecision]:
        if not self._guard.acquire(blocking=False):
            self._count("dropped_busy")
            note_tick("busy")
            report("tick_dropped_busy", message="evaluation already in flight",
                   context={"stream_id": stream_id}, sink=self.error_sink, logger=log)
            return None
        try:
            self._count("ticks")
            with self._state:
                self._last_tick_ms = now_ms()
                prof = profile or self._profile

            activity = self.memory.short_term(stream_id, self.cfg.SHORT_TERM_WINDOW)
            if len(activity) < self.cfg.MIN_CONTEXT_CHARS:
                self._count("skipped")
                note_tick("skipped")
                log.debug("tick_skipped_thin_context", stream_id=stream_id, chars=len(activity))
                return None

            prompt = compose_evaluation_prompt(prof, prof.values or self.cfg.CORE_VALUES,
                                               self.policy_book.rules(), activity)
            options = GenerateOptions(temperature=self.cfg.TEMPERATURE, response_schema=DECISION_SCHEMA)
            try:
                obj, raw = self.gateway.generate_json(prompt, options, timeout_s=self.cfg.GATEWAY_TIMEOUT_S,
                                                      strict=True)
                decision = build_decision(obj, floor=self.cfg.TOAST_CONFIDENCE_FLOOR,
                                          default_goal=self.cfg.DEFAULT_RELEVANT_GOAL, raw=raw)
            except GatewayError as e:
                self._count("failed")
                note_tick("failed")
                with self._state:
                    self._last_error = f"{type(e).__name__}: {e}"
                report(error_key_for_exception(e), message=str(e), context={"stream_id": stream_id, "op": "tick"},
                       sink=self.error_sink, logger=log)
                return None

            # stop() waits on _commit, so nothing lands after it returns; fan-out happens outside it
            with self._commit:
                with self._state:
                    stale = epoch != self._epoch
                if stale:
                    self._count("discarded")
                    note_tick("discarded")
                    log.info("tick_result_discarded", stream_id=stream_id, epoch=epoch)
                    return None
                if decision.policy_update:
                    self.policy_book.append(decision.policy_update, decision.simulation_result)
                pending = self._record(decision)
            self.broadcaster.notify(*pending)
            note_tick("decided")
            log_fn = log.warning if decision.type is DecisionType.INHIBIT else log.info
            log_fn("supervisor_decision", stream_id=stream_id, type=decision.type.value,
                   confidence=decision.confidence_score, display=decision.display_mode.value,
                   policy=decision.policy_update)
            return decision
        finally:
            self._guard.release()

    def _emit(self, decision: SupervisorDecision) -> None:
        self.broadcaster.notify(*self._record(decision))

    def _record(self, decision: SupervisorDecision):
        self._count("decisions")
        note_decision(decision.type.value, decision.display_mode.value)
        return self.broadcaster.record(decision)

    def _count(self, name: str) -> None:
        with self._state:
            self._stats[name] += 1


__all__ = ["SupervisorLoop", "StreamIdProvider", "build_decision", "PROFILE_ACTION_LINK"]
