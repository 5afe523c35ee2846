# tests/gateway_tests/scripted_test.py
import json

import pytest

from gateway.base import GenerateOptions
from gateway.scripted import ScriptedGateway


def test_replays_in_order_then_default():
    gw = ScriptedGateway([{"a": 1}, "plain"], default="fallback")
    opts = GenerateOptions()
    assert json.loads(gw.generate("1", opts)) == {"a": 1}
    assert gw.generate("2", opts) == "plain"
    assert gw.generate("3", opts) == "fallback"
    assert [p for p, _ in gw.calls] == ["1", "2", "3"]


def test_exhausted_without_default_raises():
    gw = ScriptedGateway()
    with pytest.raises(IndexError):
        gw.generate("p", GenerateOptions())


def test_exception_replies_are_raised_and_push_appends():
    gw = ScriptedGateway([ValueError("boom")])
    gw.push("later")
    with pytest.raises(ValueError):
        gw.generate("p", GenerateOptions())
    assert gw.generate("p", GenerateOptions()) == "later"


def test_from_file_accepts_list_or_object(tmp_path):
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps([{"x": 1}]), encoding="utf-8")
    as_obj = tmp_path / "obj.json"
    as_obj.write_text(json.dumps({"replies": [], "default": {"y": 2}}), encoding="utf-8")

    assert json.loads(ScriptedGateway.from_file(as_list).generate("p", GenerateOptions())) == {"x": 1}
    assert json.loads(ScriptedGateway.from_file(as_obj).generate("p", GenerateOptions())) == {"y": 2}
