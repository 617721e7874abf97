"""HTTP request executor with timing and response capture."""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog

from .config import ExecutorSettings
from .errors import RequestError
from .models import RequestSpec, ResponseCapture

CONTENT_TYPE = "content-type"


class HttpExecutor:
    """Issues resolved requests over one reused ``httpx.Client``."""

    def __init__(
        self,
        settings: ExecutorSettings | None = None,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or ExecutorSettings()
        self._logger = logger or structlog.get_logger("napper")
        self._transport = transport
        self._client: httpx.Client | None = None

    def __enter__(self) -> "HttpExecutor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            self._client.close()
        self._client = None

    def execute(self, request: RequestSpec) -> ResponseCapture:
        """Send the request; only transport failures raise, status codes never do."""

        attempt = 0
        while True:
            attempt += 1
            try:
                return self._send(request)
            except httpx.TransportError as exc:
                self._logger.warning(
                    "request_transport_error",
                    method=request.method.value,
                    url=request.url,
                    attempt=attempt,
                    error=str(exc),
                )
                if attempt > self.settings.retries:
                    raise RequestError(f"{request.method.value} {request.url}: {exc}") from exc
            except (httpx.InvalidURL, httpx.RequestError) as exc:
                raise RequestError(f"{request.method.value} {request.url}: {exc}") from exc

    def _send(self, request: RequestSpec) -> ResponseCapture:
        client = self._get_client()
        headers = {name: value for name, value in request.headers.items() if name.lower() != CONTENT_TYPE}
        kwargs: dict[str, Any] = {}
        if request.body is not None:
            kwargs["content"] = request.body.content.encode("utf-8")
            headers["Content-Type"] = f"{request.body.content_type}; charset=utf-8"
        # httpx only accepts ASCII str headers, interpolated values may not be
        kwargs["headers"] = [(name.encode("utf-8"), value.encode("utf-8")) for name, value in headers.items()]

        self._logger.info("request_sent", method=request.method.value, url=request.url)
        self._logger.debug("request_headers", count=len(kwargs["headers"]))
        start = time.perf_counter()
        response = client.request(request.method.value, request.url, **kwargs)
        elapsed_ms = (time.perf_counter() - start) * 1000

        body = response.text
        self._logger.info(
            "request_completed",
            status=response.status_code,
            duration_ms=round(elapsed_ms),
        )
        self._logger.debug("response_body", length=len(body))
        return ResponseCapture(
            status_code=response.status_code,
            headers=_merge_headers(response.headers),
            body=body,
            duration_ms=elapsed_ms,
        )

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            timeout_ms = self.settings.timeout_ms
            options: dict[str, Any] = {
                "follow_redirects": self.settings.follow_redirects,
                "verify": self.settings.verify_ssl,
                # unset means wait indefinitely, not httpx's 5s default
                "timeout": httpx.Timeout(None if timeout_ms is None else timeout_ms / 1000),
            }
            if self._transport is not None:
                options["transport"] = self._transport
            self._client = httpx.Client(**options)
        return self._client


def _merge_headers(headers: httpx.Headers) -> dict[str, str]:
    """Collapse the raw header list into one map, keeping the server's casing."""

    merged: dict[str, str] = {}
    for raw_name, raw_value in headers.raw:
        name = raw_name.decode(headers.encoding)
        value = raw_value.decode(headers.encoding)
        merged[name] = f"{merged[name]}, {value}" if name in merged else value
    return merged
