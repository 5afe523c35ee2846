# tests/supervisor_tests/loop_test.py
import json
import threading
import time

import pytest

from common.broadcast import Broadcaster
from gateway.base import CallableGateway
from gateway.client import StructuredGateway
from gateway.config import GatewayConfig
from gateway.scripted import ScriptedGateway
from memory.config import MemoryConfig
from memory.models import FrameDraft
from memory.store.inmem import InMemoryKV
from memory.streams import StreamMemory
from supervisor.config import SupervisorConfig
from supervisor.loop import SupervisorLoop
from supervisor.model import DecisionType, DisplayMode, UserProfile
from supervisor.policies import MetaPolicyBook


FULL_PROFILE = UserProfile(goals="Ship a safe product by Q3", dreams="Independent studio")


def _decision(type="allow", confidence=90, **extra):
    d = {"type": type, "confidenceScore": confidence, "simulationResult": "sim", "internalReasoning": "why",
         "userMessage": "msg"}
    d.update(extra)
    return d


class Rig:
    def __init__(self, gateway=None, replies=None, cfg=None, kv=None):
        self.kv = kv if kv is not None else InMemoryKV()
        self.memory = StreamMemory(None, cfg=MemoryConfig())
        self.raw = gateway if gateway is not None else ScriptedGateway(replies or [])
        self.gateway = StructuredGateway(self.raw, cfg=GatewayConfig(RETRIES=0, TIMEOUT_S=5.0), sleep=lambda s: None)
        self.errors = []
        self.cfg = cfg or SupervisorConfig()
        self.book = MetaPolicyBook(self.kv, key=self.cfg.POLICIES_KEY)
        self.loop = SupervisorLoop(self.memory, self.gateway, policies=self.book,
                                   broadcaster=Broadcaster("decisions"), cfg=self.cfg,
                                   error_sink=self.errors.append)
        self.sid = self.memory.create_stream("Design a cup")

    def busy_stream(self, n=3):
        for i in range(n):
            self.memory.append_frame(self.sid, FrameDraft(
                agent_name="Coordinator" if i % 2 == 0 else "Critic",
                thought=f"considering handle ergonomics round {i}", action="SHAKE", output=f"revision {i}"))
        return self.sid


def _wait_idle(loop, tries=250):
    for _ in range(tries):
        if not loop.is_processing:
            return True
        threading.Event().wait(0.02)
    return False


# ----------------- tick -----------------

def test_tick_emits_decision_and_broadcasts():
    rig = Rig(replies=[_decision("allow", 92, relevantGoal="Ship")])
    seen = []
    rig.loop.subscribe(lambda ds: seen.append(ds))

    d = rig.loop.tick(rig.busy_stream(), FULL_PROFILE)

    assert d.type is DecisionType.ALLOW and d.display_mode is DisplayMode.WIDGET
    assert d.relevant_goal == "Ship"
    assert rig.loop.history() == [d]
    assert seen == [[], [d]]
    assert not rig.loop.is_processing


def test_tick_prompt_contains_profile_policies_and_activity():
    rig = Rig(replies=[_decision()])
    rig.book.append("Never skip user review")
    rig.loop.tick(rig.busy_stream(), FULL_PROFILE)

    prompt, opts = rig.raw.calls[0]
    assert "Goals: Ship a safe product by Q3" in prompt
    assert "Dreams: Independent studio" in prompt
    assert '["Accuracy > Speed", "Transparency > Magic", "Security > Convenience"]' in prompt
    assert "- Policy: Never skip user review" in prompt
    assert "[ShortTerm] Critic: considering handle ergonomics round 1" in prompt
    assert opts.temperature == pytest.approx(0.1)
    assert opts.response_schema["required"] == ["type", "confidenceScore", "simulationResult", "userMessage"]


def test_prompt_without_policies_says_so():
    rig = Rig(replies=[_decision()])
    rig.loop.tick(rig.busy_stream(), FULL_PROFILE)
    assert "No custom policies yet." in rig.raw.calls[0][0]


def test_short_term_window_is_six_frames():
    rig = Rig(replies=[_decision()])
    rig.busy_stream(9)
    rig.loop.tick(rig.sid, FULL_PROFILE)
    prompt = rig.raw.calls[0][0]
    assert "round 2" not in prompt and "round 3" in prompt and "round 8" in prompt


def test_thin_context_is_skipped_without_gateway_call():
    rig = Rig(replies=[_decision()])
    rig.memory.append_frame(rig.sid, FrameDraft(agent_name="C", thought="x", action="IDLE"))
    assert rig.loop.tick(rig.sid, FULL_PROFILE) is None
    assert rig.loop.tick("unknown-stream", FULL_PROFILE) is None
    assert rig.raw.calls == []
    assert not rig.loop.is_processing


def test_busy_tick_makes_no_gateway_call_and_no_decision():
    entered = threading.Event()
    release = threading.Event()
    calls = []

    def slow(prompt, options):
        calls.append(prompt)
        entered.set()
        release.wait(5)
        return json.dumps(_decision())

    rig = Rig(gateway=CallableGateway(slow))
    sid = rig.busy_stream()
    t = threading.Thread(target=rig.loop.tick, args=(sid, FULL_PROFILE))
    t.start()
    assert entered.wait(5)

    assert rig.loop.is_processing
    assert rig.loop.tick(sid, FULL_PROFILE) is None
    assert len(calls) == 1
    assert rig.loop.history() == []

    release.set()
    t.join(5)
    assert len(rig.loop.history()) == 1
    assert rig.loop.health()["dropped_busy"] == 1


@pytest.mark.parametrize("reply", [
    RuntimeError("503"),
    "not json",
    _decision("shrug"),
    {"type": "allow", "confidenceScore": 90},
])
def test_gateway_failure_emits_nothing_and_clears_guard(reply):
    rig = Rig(replies=[reply])
    assert rig.loop.tick(rig.busy_stream(), FULL_PROFILE) is None
    assert rig.loop.history() == []
    assert not rig.loop.is_processing
    assert rig.errors and rig.errors[-1].key in {"gateway_failure", "malformed_response"}


def test_hung_gateway_times_out_and_clears_guard():
    hang = threading.Event()

    def stuck(prompt, options):
        hang.wait(10)
        return json.dumps(_decision())

    rig = Rig(gateway=CallableGateway(stuck), cfg=SupervisorConfig(GATEWAY_TIMEOUT_S=0.05))
    assert rig.loop.tick(rig.busy_stream(), FULL_PROFILE) is None
    assert not rig.loop.is_processing
    assert rig.errors[-1].key == "gateway_timeout"
    hang.set()


def test_new_policy_is_appended_and_persisted():
    rig = Rig(replies=[_decision("inhibit", 95, newPolicy="Ask before deleting ideas", simulationResult="data loss")])
    d = rig.loop.tick(rig.busy_stream(), FULL_PROFILE)

    assert d.policy_update == "Ask before deleting ideas"
    [p] = rig.loop.policies()
    assert p.rule == "Ask before deleting ideas" and p.created_context == "data loss" and p.weight == 1
    stored = json.loads(rig.kv.get("pratejra_supervisor_meta"))
    assert stored[0]["rule"] == "Ask before deleting ideas"

    reloaded = MetaPolicyBook(rig.kv)
    assert reloaded.rules() == ["Ask before deleting ideas"]


def test_null_optional_fields_fall_back_to_defaults():
    rig = Rig(replies=[_decision("allow", 90, newPolicy=None, relevantGoal=None, internalReasoning=None)])
    d = rig.loop.tick(rig.busy_stream(), FULL_PROFILE)

    assert d is not None
    assert d.relevant_goal == "General Alignment"
    assert d.policy_update is None and d.reasoning == ""
    assert rig.loop.policies() == []
    assert rig.errors == []


def test_decisions_are_most_recent_first():
    rig = Rig(replies=[_decision("allow", 90), _decision("inhibit", 80)])
    sid = rig.busy_stream()
    first = rig.loop.tick(sid, FULL_PROFILE)
    second = rig.loop.tick(sid, FULL_PROFILE)
    assert rig.loop.history() == [second, first]


def test_failing_subscriber_does_not_break_tick():
    rig = Rig(replies=[_decision()])
    good = []

    def bad(ds):
        if ds:
            raise RuntimeError("ui crashed")

    rig.loop.subscribe(bad)
    rig.loop.subscribe(good.append)
    d = rig.loop.tick(rig.busy_stream(), FULL_PROFILE)
    assert d is not None
    assert good[-1] == [d]
    assert not rig.loop.is_processing


def test_display_mode_is_derived_not_trusted():
    rig = Rig(replies=[_decision("inhibit", 99, displayMode="widget")])
    d = rig.loop.tick(rig.busy_stream(), FULL_PROFILE)
    assert d.display_mode is DisplayMode.TOAST


# ----------------- profile completeness -----------------

def test_incomplete_profile_synthesizes_single_guidance_toast():
    rig = Rig()
    d = rig.loop.check_profile_completeness(UserProfile(goals="", dreams=""))

    assert d.type is DecisionType.REQUEST_GUIDANCE
    assert d.display_mode is DisplayMode.TOAST
    assert d.confidence_score == 100
    assert d.action_label == "Update Profile"
    assert rig.raw.calls == []
    assert rig.loop.history() == [d]

    assert rig.loop.check_profile_completeness(UserProfile()) is None
    assert len(rig.loop.history()) == 1


def test_complete_profile_emits_nothing():
    rig = Rig()
    assert rig.loop.check_profile_completeness(FULL_PROFILE) is None
    assert rig.loop.history() == []


def test_thresholds_are_strictly_longer_than():
    rig = Rig()
    assert rig.loop.check_profile_completeness(UserProfile(goals="x" * 10, dreams="y" * 20)) is not None


def test_thin_dreams_alone_still_nudges():
    rig = Rig()
    d = rig.loop.check_profile_completeness(UserProfile(goals="Ship a safe product by Q3", dreams="y" * 20))
    assert d is not None and d.type is DecisionType.REQUEST_GUIDANCE


# ----------------- start / stop -----------------

def test_start_runs_profile_check_and_immediate_tick():
    rig = Rig(replies=[_decision("allow", 90)], cfg=SupervisorConfig(INTERVAL_S=60))
    sid = rig.busy_stream()
    got = threading.Event()
    rig.loop.subscribe(lambda ds: any(d.type is DecisionType.ALLOW for d in ds) and got.set())

    rig.loop.start(UserProfile(), lambda: sid)
    try:
        assert got.wait(5)
    finally:
        rig.loop.stop()

    types = [d.type for d in rig.loop.history()]
    assert types == [DecisionType.ALLOW, DecisionType.REQUEST_GUIDANCE]
    assert not rig.loop.running


def test_restart_replaces_timer_instead_of_stacking():
    calls = []
    tick_seen = threading.Event()

    def fn(prompt, options):
        calls.append(1)
        tick_seen.set()
        return json.dumps(_decision())

    rig = Rig(gateway=CallableGateway(fn), cfg=SupervisorConfig(INTERVAL_S=60))
    sid = rig.busy_stream()
    rig.loop.start(FULL_PROFILE, lambda: sid)
    assert tick_seen.wait(5)
    assert _wait_idle(rig.loop)
    tick_seen.clear()
    rig.loop.start(FULL_PROFILE, lambda: sid)
    assert tick_seen.wait(5)
    rig.loop.stop()

    assert len(calls) == 2
    assert rig.loop.health()["epoch"] == 3


def test_result_in_flight_at_stop_is_discarded():
    entered = threading.Event()
    release = threading.Event()

    def slow(prompt, options):
        entered.set()
        release.wait(5)
        return json.dumps(_decision("inhibit", 90, newPolicy="late rule"))

    rig = Rig(gateway=CallableGateway(slow), cfg=SupervisorConfig(INTERVAL_S=60))
    sid = rig.busy_stream()
    rig.loop.start(FULL_PROFILE, lambda: sid)
    assert entered.wait(5)
    rig.loop.stop()
    release.set()

    assert _wait_idle(rig.loop)
    assert rig.loop.history() == []
    assert rig.loop.policies() == []
    assert rig.loop.health()["discarded"] == 1


def test_stop_when_not_started_is_noop():
    rig = Rig()
    rig.loop.stop()
    assert not rig.loop.running


def test_slow_subscriber_does_not_block_stop():
    in_handler = threading.Event()
    hold = threading.Event()

    def sluggish(ds):
        if ds:
            in_handler.set()
            hold.wait(2)

    rig = Rig(replies=[_decision("allow", 90)], cfg=SupervisorConfig(INTERVAL_S=60))
    sid = rig.busy_stream()
    rig.loop.subscribe(sluggish)
    rig.loop.start(FULL_PROFILE, lambda: sid)
    try:
        assert in_handler.wait(5)
        t0 = time.perf_counter()
        rig.loop.stop()
        assert time.perf_counter() - t0 < 0.5
    finally:
        hold.set()
        rig.loop.join(5)
    assert len(rig.loop.history()) == 1


def test_join_after_stop_waits_for_retired_thread():
    entered = threading.Event()
    release = threading.Event()

    def slow(prompt, options):
        entered.set()
        release.wait(5)
        return json.dumps(_decision())

    rig = Rig(gateway=CallableGateway(slow), cfg=SupervisorConfig(INTERVAL_S=60))
    sid = rig.busy_stream()
    rig.loop.start(FULL_PROFILE, lambda: sid)
    assert entered.wait(5)
    rig.loop.stop()
    threading.Timer(0.1, release.set).start()

    rig.loop.join(5)
    assert not rig.loop.is_processing
    assert rig.loop.health()["discarded"] == 1
