from __future__ import annotations

import json
import xml.etree.ElementTree as ET

import pytest

from napper.console_reporter import ConsoleReporter
from napper.models import (
    Assertion,
    AssertionResult,
    AssertOp,
    HttpMethod,
    RequestSpec,
    ResponseCapture,
    RunResult,
)
from napper.reporters import failure_message, format_json, format_json_array, format_junit, result_payload


def _results() -> list[RunResult]:
    request = RequestSpec(method=HttpMethod.GET, url="http://api.test/users/1")
    response = ResponseCapture(
        status_code=404,
        headers={"Content-Type": "application/json"},
        body='{"error": "not found"}',
        duration_ms=250.0,
    )
    status = Assertion(target="status", op=AssertOp.EQUALS, value="200")
    fast = Assertion(target="duration", op=AssertOp.LESS_THAN, value="1s")
    return [
        RunResult(
            file="/suite/get-user.nap",
            request=request,
            response=response,
            assertions=[
                AssertionResult(assertion=status, passed=False, expected="200", actual="404"),
                AssertionResult(assertion=fast, passed=True, expected="< 1s", actual="250ms"),
            ],
            passed=False,
            log=["note from post hook"],
        ),
        RunResult(file="/suite/setup.py", passed=False, error="Script exited with code 2"),
        RunResult(file="/suite/ok.nap", request=request, response=response, passed=True),
    ]


def test_result_payload_fields() -> None:
    payload = result_payload(_results()[0])

    assert payload["file"] == "/suite/get-user.nap"
    assert payload["statusCode"] == 404
    assert payload["duration"] == 250.0
    assert payload["bodyLength"] == len('{"error": "not found"}')
    assert payload["headers"] == {"Content-Type": "application/json"}
    assert payload["log"] == ["note from post hook"]
    assert "error" not in payload
    assert payload["assertions"][0] == {
        "target": "status",
        "passed": False,
        "expected": "200",
        "actual": "404",
    }


def test_json_renderers() -> None:
    results = _results()

    single = json.loads(format_json(results[1]))
    many = json.loads(format_json_array(results))

    assert single == {
        "file": "/suite/setup.py",
        "passed": False,
        "error": "Script exited with code 2",
        "assertions": [],
    }
    assert [item["passed"] for item in many] == [False, False, True]


def test_failure_message_prefers_error() -> None:
    first, second, _ = _results()

    assert failure_message(first) == "status: expected 200, got 404"
    assert failure_message(second) == "Script exited with code 2"


def test_junit_document() -> None:
    document = format_junit(_results())

    assert document.startswith("<?xml")
    root = ET.fromstring(document.encode("utf-8"))
    suite = root.find("testsuite")
    assert suite is not None
    assert suite.attrib == {"name": "nap", "tests": "3", "failures": "2", "time": "0.500"}
    cases = suite.findall("testcase")
    assert [case.attrib["name"] for case in cases] == ["get-user", "setup", "ok"]
    assert [case.find("failure") is not None for case in cases] == [True, True, False]


def test_plain_console_output(capsys: pytest.CaptureFixture[str]) -> None:
    reporter = ConsoleReporter(force_plain=True)
    results = _results()

    for result in results:
        reporter.report_result(result)
    reporter.finish_run(results)

    out = capsys.readouterr().out
    assert "[FAIL] get-user.nap" in out
    assert "404 GET http://api.test/users/1  (250ms)" in out
    assert "✗ status = 200" in out
    assert "✓ duration < 1s" in out
    assert "Error: Script exited with code 2" in out
    assert "note from post hook" in out
    assert out.rstrip().endswith("1/3 passed (2 failed)")
