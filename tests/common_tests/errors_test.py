# tests/common_tests/errors_test.py
import pytest

import observability.metrics as m
from common.errors import (
    ErrorEvent,
    GatewayAuthError,
    GatewayError,
    GatewayTimeout,
    MalformedResponse,
    error_key_for_exception,
    make_event_from_key,
    report,
    severity_for_exception,
)
from common.utils import to_bool, to_float, to_int


def test_unknown_key_defaults_to_worst_severity():
    assert make_event_from_key("something_new").severity == 1
    assert make_event_from_key("malformed_response").severity == 3
    assert make_event_from_key("gateway_timeout").severity == 2


def test_bad_severity_is_coerced():
    assert ErrorEvent(key="k", severity="x").severity == 1
    assert ErrorEvent(key="k", severity=7).severity == 1
    assert ErrorEvent(key="k", severity="2").severity == 2


def test_report_forwards_to_sink_and_counts():
    got = []
    before = m.sample("core_errors_total", {"key": "unknown_stream", "severity": "2"})
    ev = report("unknown_stream", message="no such stream", context={"stream_id": "s1"}, sink=got.append)
    assert got == [ev]
    assert ev.context == {"stream_id": "s1"}
    assert m.sample("core_errors_total", {"key": "unknown_stream", "severity": "2"}) == before + 1


def test_report_survives_failing_sink():
    def sink(ev):
        raise RuntimeError("sink down")

    ev = report("tick_dropped_busy", sink=sink)
    assert ev.key == "tick_dropped_busy"


@pytest.mark.parametrize("exc,key,sev", [
    (GatewayTimeout("t"), "gateway_timeout", 2),
    (MalformedResponse("m"), "malformed_response", 3),
    (GatewayAuthError("a"), "gateway_failure", 2),
    (GatewayError("g"), "gateway_failure", 2),
])
def test_exception_classification(exc, key, sev):
    assert error_key_for_exception(exc) == key
    assert severity_for_exception(exc) == sev


def test_env_parsers_tolerate_garbage():
    assert to_bool(None, True) is True and to_bool("off", True) is False and to_bool("YES", False) is True
    assert to_int("x", 3) == 3 and to_int("7", 3) == 7
    assert to_float("nan-ish", 1.5) == 1.5 and to_float("0.25", 1.5) == 0.25
