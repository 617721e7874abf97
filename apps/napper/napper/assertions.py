"""Assertion evaluation against captured responses."""

from __future__ import annotations

from typing import Any, Optional
import json
import re

from .models import Assertion, AssertionResult, AssertOp, ResponseCapture

MISSING = "<missing>"
HEADERS_PREFIX = "headers."
BODY_PREFIX = "body."

_ABSENT = object()


def evaluate(assertions: list[Assertion], response: ResponseCapture) -> list[AssertionResult]:
    """Evaluate every assertion; targets that cannot be located simply fail."""

    return [_evaluate_one(assertion, response) for assertion in assertions]


def locate(target: str, response: ResponseCapture) -> Optional[str]:
    """
    Resolve a target locator to its string value, or None when absent.

    Supported targets: ``status``, ``duration``, ``headers.<Name>``,
    ``body`` and ``body.<dotted.path>``.
    """

    if target == "status":
        return str(response.status_code)
    if target == "duration":
        return f"{response.duration_ms:.0f}ms"
    if target.startswith(HEADERS_PREFIX):
        return _find_header(response.headers, target[len(HEADERS_PREFIX):])
    if target == "body":
        return response.body
    if target.startswith(BODY_PREFIX):
        document = _load_json(response.body)
        if document is _ABSENT:
            return None
        node = _descend(document, target[len(BODY_PREFIX):].split("."))
        return None if node is _ABSENT else _render(node)
    return None


def _evaluate_one(assertion: Assertion, response: ResponseCapture) -> AssertionResult:
    actual = locate(assertion.target, response)
    expected = assertion.value or ""

    match assertion.op:
        case AssertOp.EXISTS:
            return AssertionResult(
                assertion=assertion,
                passed=actual is not None,
                expected="exists",
                actual=MISSING if actual is None else "exists",
            )
        case AssertOp.EQUALS:
            passed = actual == expected
            expected_text = expected
        case AssertOp.CONTAINS:
            passed = actual is not None and expected.casefold() in actual.casefold()
            expected_text = assertion.describe()
        case AssertOp.MATCHES:
            passed = actual is not None and _search(expected, actual)
            expected_text = assertion.describe()
        case AssertOp.LESS_THAN | AssertOp.GREATER_THAN:
            passed = actual is not None and _compare(assertion.op, actual, expected)
            expected_text = assertion.describe()

    return AssertionResult(
        assertion=assertion,
        passed=passed,
        expected=expected_text,
        actual=MISSING if actual is None else actual,
    )


def _find_header(headers: dict[str, str], name: str) -> Optional[str]:
    if name in headers:
        return headers[name]
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _load_json(body: str) -> Any:
    try:
        return json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return _ABSENT


def _descend(node: Any, segments: list[str]) -> Any:
    """Walk object properties one segment at a time."""

    if not segments:
        return node
    head, *rest = segments
    if not isinstance(node, dict) or head not in node:
        return _ABSENT
    return _descend(node[head], rest)


def _render(node: Any) -> str:
    if isinstance(node, str):
        return node
    if isinstance(node, bool):
        return "true" if node else "false"
    if node is None:
        return "null"
    if isinstance(node, (int, float)):
        return json.dumps(node)
    return json.dumps(node, separators=(",", ":"), ensure_ascii=False)


def _search(pattern: str, actual: str) -> bool:
    try:
        return re.search(pattern, actual) is not None
    except re.error:
        return False


def _compare(op: AssertOp, actual: str, expected: str) -> bool:
    left = parse_measure(actual)
    right = parse_measure(expected)
    if left is None or right is None:
        return False
    return left < right if op is AssertOp.LESS_THAN else left > right


def parse_measure(text: str) -> Optional[float]:
    """Parse a number with an optional ``ms``/``s`` suffix, normalised to milliseconds."""

    value = text.strip()
    scale = 1.0
    if value.endswith("ms"):
        value = value[:-2]
    elif value.endswith("s"):
        value = value[:-1]
        scale = 1000.0
    try:
        return float(value.strip()) * scale
    except ValueError:
        return None
