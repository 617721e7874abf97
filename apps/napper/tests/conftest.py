"""Test bootstrap and shared fixtures for napper."""

from __future__ import annotations

import json
import sys
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Iterator

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))


class _Handler(BaseHTTPRequestHandler):
    """Small JSON API used by the runner and CLI tests."""

    def do_GET(self) -> None:  # noqa: N802 - HTTP handler requirement
        if self.path == "/fail":
            self._reply(500, {"error": "boom"})
        elif self.path == "/users/1":
            self._reply(200, {"id": 1, "name": "Ada", "active": True, "roles": ["admin"]})
        elif self.path == "/me":
            if self.headers.get("Authorization") == "Bearer abc":
                self._reply(200, {"user": "ada"})
            else:
                self._reply(401, {"error": "unauthorized"})
        else:
            self._reply(200, {"path": self.path})

    def do_POST(self) -> None:  # noqa: N802 - HTTP handler requirement
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length).decode("utf-8")
        if self.path == "/login":
            self._reply(200, {"token": "abc"})
            return
        self._reply(
            201,
            {"received": raw, "contentType": self.headers.get("Content-Type")},
        )

    def _reply(self, status: int, payload: dict) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("X-Request-Path", self.path)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:  # pragma: no cover - silence logs
        return


@pytest.fixture()
def base_url() -> Iterator[str]:
    server = HTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=2)
