# tests/agents_tests/workspace_test.py
import pytest

import observability.metrics as m
from agents.model import ActionType, AgentAction, Idea, IdeaType, Role
from agents.workspace import IdAllocator, apply_action


def _idea(id, x=0.0, y=0.0, **kw):
    return Idea(id=id, content=kw.pop("content", id), x=x, y=y, **kw)


def _act(kind, *targets, **kw):
    return AgentAction.build(kind, list(targets), **kw)


# ----------------- MERGE -----------------

def test_merge_two_targets_lands_at_centroid_and_removes_them():
    ws = [_idea("A", 0, 0), _idea("B", 10, 10), _idea("C", 50, 50)]
    out = apply_action(ws, _act(ActionType.MERGE, "A", "B"), role=Role.COORDINATOR, output_content="Cup body")

    ids = [i.id for i in out]
    assert "A" not in ids and "B" not in ids and "C" in ids
    merged = out[-1]
    assert (merged.x, merged.y) == (5.0, 5.0)
    assert merged.type is IdeaType.INSIGHT
    assert merged.content == "Cup body"
    assert merged.shape == "hexagon" and merged.scale == pytest.approx(1.2)


def test_merge_naming_consumed_target_again_is_noop():
    alloc = IdAllocator()
    ws = [_idea("A", 0, 0), _idea("B", 10, 10)]
    after = apply_action(ws, _act(ActionType.MERGE, "A", "B"), role=Role.COORDINATOR, allocator=alloc)
    again = apply_action(after, _act(ActionType.MERGE, "A", after[0].id), role=Role.CRITIC, allocator=alloc)
    assert again == after


def test_merge_three_targets_and_fallback_label():
    ws = [_idea("A", 0, 0), _idea("B", 30, 0), _idea("C", 0, 30)]
    out = apply_action(ws, _act(ActionType.MERGE, "A", "B", "C"), role=Role.COORDINATOR, output_content="")
    assert len(out) == 1
    assert (out[0].x, out[0].y) == (pytest.approx(10.0), pytest.approx(10.0))
    assert out[0].content == "Synthesis"


def test_merge_with_single_live_target_counts_stale_skip():
    before = m.sample("core_agent_stale_targets_total", {"action": "MERGE"})
    ws = [_idea("A"), _idea("B")]
    out = apply_action(ws, _act(ActionType.MERGE, "A", "gone"), role=Role.COORDINATOR)
    assert out == ws
    assert m.sample("core_agent_stale_targets_total", {"action": "MERGE"}) == before + 1


# ----------------- EXPLODE -----------------

def test_explode_single_target_yields_two_parts():
    ws = [_idea("C", 20, 40, type=IdeaType.CONSTRAINT, color="#123456"), _idea("D")]
    out = apply_action(ws, _act(ActionType.EXPLODE, "C"), role=Role.CRITIC)

    ids = [i.id for i in out]
    assert "C" not in ids and "D" in ids
    parts = [i for i in out if i.id != "D"]
    assert len(parts) == 2
    a, b = parts
    assert (a.x, a.y) == (15.0, 35.0) and (b.x, b.y) == (25.0, 45.0)
    assert a.content == "Part A" and b.content == "Part B"
    assert all(p.type is IdeaType.CONSTRAINT and p.color == "#123456" for p in parts)
    assert all(p.scale == pytest.approx(0.8) for p in parts)


def test_explode_absent_target_leaves_workspace_unchanged():
    ws = [_idea("C")]
    assert apply_action(ws, _act(ActionType.EXPLODE, "X"), role=Role.CRITIC) == ws


def test_explode_with_two_targets_is_skipped():
    ws = [_idea("C"), _idea("D")]
    assert apply_action(ws, _act(ActionType.EXPLODE, "C", "D"), role=Role.CRITIC) == ws


def test_explode_never_reuses_an_id():
    alloc = IdAllocator()
    ws = [_idea("C"), _idea("C-a")]
    out = apply_action(ws, _act(ActionType.EXPLODE, "C"), role=Role.CRITIC, allocator=alloc)
    ids = [i.id for i in out]
    assert len(ids) == len(set(ids))
    assert "C-a2" in ids and "C-b" in ids
    # an id that disappeared stays burned
    assert "C" in alloc


# ----------------- SHAKE / IDLE / READ_STREAM -----------------

@pytest.mark.parametrize("kind", [ActionType.SHAKE, ActionType.IDLE])
@pytest.mark.parametrize("role,color", [(Role.CRITIC, "#fbbf24"), (Role.COORDINATOR, "#3b82f6")])
def test_shake_and_idle_recolor_targets_by_role(kind, role, color):
    ws = [_idea("A"), _idea("B")]
    out = apply_action(ws, _act(kind, "A", "missing"), role=role)
    assert [i.id for i in out] == ["A", "B"]
    assert out[0].color == color
    assert out[1] == ws[1]


def test_read_stream_never_mutates_workspace():
    ws = [_idea("A"), _idea("B")]
    out = apply_action(ws, _act(ActionType.READ_STREAM, "A", target_stream_id="s"), role=Role.CRITIC)
    assert out == ws


def test_every_action_type_is_handled_and_input_untouched():
    ws = [_idea("A", 0, 0), _idea("B", 2, 2)]
    snapshot = list(ws)
    for kind in ActionType:
        apply_action(ws, _act(kind, "A", "B"), role=Role.COORDINATOR)
    assert ws == snapshot


def test_action_build_dedupes_targets_in_order():
    a = AgentAction.build(ActionType.MERGE, ["B", "A", "B", "A"])
    assert a.target_ids == ("B", "A")
    assert a.description == "MERGE"


def test_role_alternates_by_parity():
    assert [Role.for_turn(n) for n in range(4)] == [Role.COORDINATOR, Role.CRITIC, Role.COORDINATOR, Role.CRITIC]
