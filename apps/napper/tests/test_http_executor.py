from __future__ import annotations

import httpx
import pytest

from napper.config import ExecutorSettings
from napper.errors import RequestError
from napper.http_executor import HttpExecutor
from napper.models import HttpMethod, RequestBody, RequestSpec


def _executor(handler, **settings) -> HttpExecutor:
    return HttpExecutor(ExecutorSettings(**settings), transport=httpx.MockTransport(handler))


def test_body_carries_declared_content_type_with_charset() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, content=b"{}")

    request = RequestSpec(
        method=HttpMethod.POST,
        url="http://api.test/items",
        headers={"content-type": "text/plain", "X-Trace": "1"},
        body=RequestBody(content_type="application/json", content='{"name": "café"}'),
    )
    with _executor(handler) as executor:
        response = executor.execute(request)

    assert response.status_code == 201
    (sent,) = seen
    assert sent.method == "POST"
    assert sent.headers["Content-Type"] == "application/json; charset=utf-8"
    assert sent.headers.get_list("content-type") == ["application/json; charset=utf-8"]
    assert sent.headers["X-Trace"] == "1"
    assert sent.content == '{"name": "café"}'.encode("utf-8")


def test_response_headers_keep_casing_and_join_duplicates() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers=[("X-Dup", "a"), ("X-Dup", "b"), ("ETag", "v1")],
            content=b"hello",
        )

    with _executor(handler) as executor:
        response = executor.execute(RequestSpec(url="http://api.test/"))

    assert response.headers["X-Dup"] == "a, b"
    assert response.headers["ETag"] == "v1"
    assert response.body == "hello"
    assert response.duration_ms >= 0


def test_error_status_is_not_an_exception() -> None:
    with _executor(lambda request: httpx.Response(503, content=b"down")) as executor:
        response = executor.execute(RequestSpec(url="http://api.test/"))

    assert response.status_code == 503
    assert response.body == "down"


def test_transport_failures_are_retried_then_raised() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    with _executor(handler, retries=2) as executor:
        with pytest.raises(RequestError, match="connection refused"):
            executor.execute(RequestSpec(url="http://api.test/"))

    assert len(calls) == 3


def test_retry_recovers_after_transient_failure() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            raise httpx.ReadError("reset", request=request)
        return httpx.Response(200, content=b"ok")

    with _executor(handler, retries=1) as executor:
        response = executor.execute(RequestSpec(url="http://api.test/"))

    assert response.status_code == 200
    assert len(calls) == 2


def test_close_releases_client() -> None:
    executor = _executor(lambda request: httpx.Response(204))
    executor.execute(RequestSpec(url="http://api.test/"))

    executor.close()

    assert executor._client is None


def test_non_ascii_header_values_are_sent_as_utf8() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    with _executor(handler) as executor:
        executor.execute(RequestSpec(url="http://api.test/", headers={"X-Name": "café"}))

    (sent,) = seen
    assert (b"X-Name", "café".encode("utf-8")) in sent.headers.raw
