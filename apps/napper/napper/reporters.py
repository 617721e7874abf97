"""Machine-readable renderers for run results (JUnit XML, JSON, NDJSON)."""

from __future__ import annotations

from pathlib import Path
from typing import Any
import json
import xml.etree.ElementTree as ET

from .models import RunResult


def result_payload(result: RunResult) -> dict[str, Any]:
    """JSON-friendly view of one result, as consumed by editor integrations."""

    payload: dict[str, Any] = {"file": result.file, "passed": result.passed}
    if result.error is not None:
        payload["error"] = result.error
    if result.response is not None:
        response = result.response
        payload.update(
            {
                "statusCode": response.status_code,
                "duration": response.duration_ms,
                "bodyLength": len(response.body),
                "body": response.body,
                "headers": dict(response.headers),
            }
        )
    payload["assertions"] = [
        {
            "target": item.assertion.target,
            "passed": item.passed,
            "expected": item.expected,
            "actual": item.actual,
        }
        for item in result.assertions
    ]
    if result.log:
        payload["log"] = list(result.log)
    return payload


def format_json(result: RunResult) -> str:
    return json.dumps(result_payload(result), ensure_ascii=False)


def format_json_array(results: list[RunResult]) -> str:
    return json.dumps([result_payload(result) for result in results], ensure_ascii=False)


def failure_message(result: RunResult) -> str:
    if result.error:
        return result.error
    return "; ".join(
        f"{item.assertion.target}: expected {item.expected}, got {item.actual}"
        for item in result.failed_assertions
    )


def format_junit(results: list[RunResult], suite_name: str = "nap") -> str:
    failures = sum(1 for result in results if not result.passed)
    total_time = sum(result.response.duration_ms / 1000 for result in results if result.response)
    root = ET.Element(
        "testsuites",
        attrib={"tests": str(len(results)), "failures": str(failures), "time": f"{total_time:.3f}"},
    )
    suite = ET.SubElement(
        root,
        "testsuite",
        attrib={
            "name": suite_name,
            "tests": str(len(results)),
            "failures": str(failures),
            "time": f"{total_time:.3f}",
        },
    )
    for result in results:
        elapsed = result.response.duration_ms / 1000 if result.response else 0.0
        case = ET.SubElement(
            suite,
            "testcase",
            attrib={"name": Path(result.file).stem, "time": f"{elapsed:.3f}"},
        )
        if not result.passed:
            ET.SubElement(case, "failure", attrib={"message": failure_message(result)})
    ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True).decode("utf-8") + "\n"
