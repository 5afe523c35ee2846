# tests/session_tests/session_test.py
import json

from agents.config import AgentConfig
from agents.model import AGENT_GOALS, ActionType
from gateway.config import GatewayConfig
from gateway.scripted import ScriptedGateway
from memory.config import MemoryConfig
from memory.models import FrameDraft
from memory.store.filekv import FileKV
from supervisor.model import DecisionType, UserProfile

import main as cli
from session import CoreSession

FAST = GatewayConfig(RETRIES=0, TIMEOUT_S=5.0)
SEEDS = {"concepts": [{"label": "Handle", "type": "component"}, {"label": "Heat loss", "type": "constraint"}]}


def _frame():
    return FrameDraft(agent_name="Coordinator", thought="a fairly long thought about the design",
                      action="IDLE", output="nothing yet")


def _session(replies, **kw):
    kw.setdefault("background", False)
    kw.setdefault("gateway_cfg", FAST)
    kw.setdefault("memory_cfg", MemoryConfig())
    return CoreSession(ScriptedGateway(replies), **kw)


def test_seeded_simulation_runs_archives_and_ingests():
    ingested = []
    replies = [
        SEEDS,
        {"thought": "combine", "action": "MERGE", "targetBlockIds": ["init-1", "init-2"], "outputContent": "Insulated mug"},
        {"thought": "check it", "action": "SHAKE", "targetBlockIds": ["merged-3"]},
    ]
    with _session(replies, ingest=ingested.append, agent_cfg=AgentConfig(MAX_TURNS=2)) as s:
        archived = []
        s.memory_events.subscribe(archived.append)
        sim = s.new_simulation(AGENT_GOALS[1], topic="mugs")
        assert [i.content for i in sim.workspace] == ["Handle", "Heat loss"]

        turns = sim.run()
        assert [t.action.type for t in turns] == [ActionType.MERGE, ActionType.SHAKE]
        assert [i.content for i in sim.workspace] == ["Insulated mug"]

        assert s.memory.archive(sim.stream_id)
        assert not s.memory.archive(sim.stream_id)
        assert len(ingested) == 1 and ingested[0].goal == "Creative Forge"
        assert archived[-1][0].stream_id == sim.stream_id
        assert "Creative Forge" in s.memory.long_term("Creative")

        h = s.health()
        assert h["memory"]["archived"] == 1 and h["memory"]["frames_total"] == 2
        assert h["training_examples"] == 2
        assert h["errors"] == 0


def test_supervisor_and_dispatcher_share_memory():
    replies = [
        {"thought": "first sketch of the handle shape", "action": "IDLE", "outputContent": "sketch"},
        {"thought": "second pass on the handle shape", "action": "IDLE", "outputContent": "sketch 2"},
        {"type": "request_guidance", "confidenceScore": 55, "simulationResult": "unclear",
         "userMessage": "Which handle?", "newPolicy": "Confirm ergonomics"},
    ]
    with _session(replies) as s:
        sid = s.memory.create_stream("Design a cup")
        sim = s.simulation(sid, "Design a cup")
        sim.step()
        sim.step()
        d = s.supervisor.tick(sid, UserProfile(goals="Ship a great mug line", dreams="Own a studio"))
        assert d.type is DecisionType.REQUEST_GUIDANCE
        assert s.decisions.history() == [d]
        assert s.policies.rules() == ["Confirm ergonomics"]


def test_file_backed_session_survives_restart(tmp_path):
    replies = [{"type": "inhibit", "confidenceScore": 90, "simulationResult": "s", "userMessage": "m",
                "newPolicy": "Keep it simple"}]
    with _session(replies, data_dir=tmp_path) as s:
        sid = s.memory.create_stream("persisted goal with some words in it")
        s.memory.append_frame(sid, _frame())
        s.supervisor.tick(sid, UserProfile(goals="long enough goals", dreams="dreams!"))

    with _session([], data_dir=tmp_path) as again:
        assert isinstance(again.kv, FileKV)
        assert again.memory.get_stream(sid).goal == "persisted goal with some words in it"
        assert again.policies.rules() == ["Keep it simple"]


def test_errors_are_collected_and_forwarded():
    forwarded = []
    with _session([], error_sink=forwarded.append) as s:
        s.memory.append_frame("ghost", _frame())
        assert [e.key for e in s.errors] == ["unknown_stream"]
        assert forwarded == s.errors


def test_close_is_idempotent_and_background_queues_stop():
    s = _session([], background=True)
    s.close()
    s.close()
    assert not s.supervisor.running
    assert s.ingest_queue.submit(lambda: None) is False


def test_cli_runs_scripted_simulation(tmp_path, capsys):
    script = tmp_path / "script.json"
    script.write_text(json.dumps({"replies": [SEEDS], "default": {"thought": "t", "action": "IDLE"}}), encoding="utf-8")
    export = tmp_path / "train.jsonl"

    code = cli.main(["--script", str(script), "--goal", "g3", "--archive", "--log-level", "ERROR",
                     "--export-training", str(export)])

    assert code == 0
    assert '"turns": 10' in capsys.readouterr().out
    lines = export.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 10
    assert json.loads(lines[0])["messages"][-1]["role"] == "assistant"


def test_pick_goal_matches_presets_or_wraps_text():
    assert cli.pick_goal("g2").label == "Creative Forge"
    assert cli.pick_goal("questioning").id == "g3"
    custom = cli.pick_goal("design a kettle")
    assert custom.type == "custom" and custom.description == "design a kettle"
