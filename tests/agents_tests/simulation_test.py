# tests/agents_tests/simulation_test.py
import json
import threading

import pytest

from agents.config import AgentConfig
from agents.dispatcher import TurnDispatcher
from agents.model import Idea
from agents.simulation import Simulation
from common.errors import GatewayError
from gateway.base import CallableGateway
from gateway.client import StructuredGateway
from gateway.config import GatewayConfig
from gateway.scripted import ScriptedGateway
from memory.config import MemoryConfig
from memory.streams import StreamMemory


def _idle(thought="hm"):
    return {"agentName": "x", "thought": thought, "action": "IDLE", "targetBlockIds": [], "outputContent": ""}


def _dispatcher(raw, max_turns=10):
    memory = StreamMemory(None, cfg=MemoryConfig())
    gw = StructuredGateway(raw, cfg=GatewayConfig(RETRIES=0, TIMEOUT_S=5.0), sleep=lambda s: None)
    return TurnDispatcher(memory, gw, cfg=AgentConfig(MAX_TURNS=max_turns)), memory


def test_run_stops_at_max_turns_and_alternates_roles():
    raw = ScriptedGateway(default=_idle())
    d, memory = _dispatcher(raw, max_turns=4)
    sid = memory.create_stream("g")
    sim = Simulation(d, sid, "g", [Idea(id="A", content="a")])

    turns = sim.run()

    assert [t.agent_name for t in turns] == ["Coordinator", "Critic", "Coordinator", "Critic"]
    assert [t.step for t in turns] == [1, 2, 3, 4]
    assert sim.finished and sim.turn_count == 4
    assert sim.step() is None
    assert len(raw.calls) == 4
    assert memory.frame_count(sid) == 4


def test_workspace_threads_through_turns():
    replies = [
        {"action": "MERGE", "targetBlockIds": ["A", "B"], "outputContent": "AB", "thought": "t"},
        {"action": "EXPLODE", "targetBlockIds": ["A"], "thought": "A is gone already"},
    ]
    d, memory = _dispatcher(ScriptedGateway(replies))
    sid = memory.create_stream("g")
    sim = Simulation(d, sid, "g", [Idea(id="A", content="a", x=0, y=0), Idea(id="B", content="b", x=4, y=8)])

    sim.step()
    assert [i.content for i in sim.workspace] == ["AB"]
    sim.step()
    assert [i.content for i in sim.workspace] == ["AB"]
    assert sim.turn_count == 2 and len(sim.history) == 2


def test_failed_turn_does_not_advance_and_can_be_retried():
    raw = ScriptedGateway([RuntimeError("blip"), _idle("second try")])
    d, memory = _dispatcher(raw)
    sid = memory.create_stream("g")
    sim = Simulation(d, sid, "g")

    with pytest.raises(GatewayError):
        sim.step()
    assert sim.turn_count == 0 and memory.frame_count(sid) == 0

    turn = sim.step()
    assert turn.agent_name == "Coordinator" and turn.thought == "second try"


def test_run_without_halting_records_error():
    d, memory = _dispatcher(ScriptedGateway([_idle(), "{broken"]))
    sim = Simulation(d, memory.create_stream("g"), "g")
    turns = sim.run(halt_on_error=False)
    assert len(turns) == 1
    assert isinstance(sim.last_error, GatewayError)
    assert not sim.finished


def test_cancel_mid_call_stops_without_appending():
    sim_ref = {}

    def fn(prompt, options):
        sim_ref["sim"].cancel()
        return json.dumps(_idle())

    d, memory = _dispatcher(CallableGateway(fn))
    sid = memory.create_stream("g")
    sim = Simulation(d, sid, "g")
    sim_ref["sim"] = sim

    assert sim.run() == []
    assert sim.cancelled and sim.finished
    assert memory.frame_count(sid) == 0


def test_cancel_from_other_thread_is_observed_before_next_turn():
    gate = threading.Event()
    release = threading.Event()

    def fn(prompt, options):
        gate.set()
        release.wait(5)
        return json.dumps(_idle())

    d, memory = _dispatcher(CallableGateway(fn))
    sid = memory.create_stream("g")
    sim = Simulation(d, sid, "g")
    t = threading.Thread(target=sim.run)
    t.start()
    assert gate.wait(5)
    sim.cancel()
    release.set()
    t.join(5)

    assert not t.is_alive()
    assert memory.frame_count(sid) == 0
