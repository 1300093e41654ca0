"""
Shared test fixtures.

``consul_agent`` runs a fake Consul agent (agent service + KV endpoints) on a
ThreadingHTTPServer so the client is exercised over real HTTP.
"""

from __future__ import annotations

import base64
import json
import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest


class FakeConsulAgent:
    """Dict-backed stand-in for the agent's service catalog and KV store."""

    def __init__(self):
        self.lock = threading.Lock()
        self.services: dict[str, dict] = {}
        self.kv: dict[str, bytes | None] = {}
        self.requests: list[tuple[str, str]] = []
        self.tokens: list[str | None] = []
        # When set, every request is answered with (status, body)
        self.fail_with: tuple[int, str] | None = None
        self.kv_put_result = "true"
        self.address = ""


def _make_handler(agent: FakeConsulAgent):

    class FakeConsulHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            pass

        def _send(self, status: int, body: bytes = b"", content_type: str = "application/json"):
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _read_body(self) -> bytes:
            length = int(self.headers.get("Content-Length") or 0)
            return self.rfile.read(length) if length else b""

        def _record(self) -> str:
            path = urllib.parse.urlsplit(self.path).path
            with agent.lock:
                agent.requests.append((self.command, path))
                agent.tokens.append(self.headers.get("X-Consul-Token"))
            return path

        def _maybe_fail(self) -> bool:
            if agent.fail_with is None:
                return False
            status, body = agent.fail_with
            self._send(status, body.encode(), content_type="text/plain")
            return True

        def do_GET(self):
            path = self._record()
            if self._maybe_fail():
                return
            if path.startswith("/v1/kv/"):
                key = urllib.parse.unquote(path[len("/v1/kv/"):])
                with agent.lock:
                    if key not in agent.kv:
                        self._send(404)
                        return
                    value = agent.kv[key]
                encoded = base64.b64encode(value).decode() if value is not None else None
                body = json.dumps([{"Key": key, "Flags": 0, "Value": encoded}]).encode()
                self._send(200, body)
            else:
                self._send(404)

        def do_PUT(self):
            path = self._record()
            body = self._read_body()
            if self._maybe_fail():
                return
            if path == "/v1/agent/service/register":
                registration = json.loads(body)
                with agent.lock:
                    agent.services[registration["ID"]] = registration
                self._send(200)
            elif path.startswith("/v1/agent/service/deregister/"):
                service_id = urllib.parse.unquote(path[len("/v1/agent/service/deregister/"):])
                with agent.lock:
                    if service_id not in agent.services:
                        self._send(404, f"Unknown service ID {service_id!r}".encode(),
                                   content_type="text/plain")
                        return
                    del agent.services[service_id]
                self._send(200)
            elif path.startswith("/v1/kv/"):
                key = urllib.parse.unquote(path[len("/v1/kv/"):])
                if agent.kv_put_result == "true":
                    with agent.lock:
                        agent.kv[key] = body
                self._send(200, agent.kv_put_result.encode())
            else:
                self._send(404)

    return FakeConsulHandler


@pytest.fixture
def consul_agent():
    agent = FakeConsulAgent()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(agent))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    agent.address = f"127.0.0.1:{server.server_address[1]}"
    yield agent
    server.shutdown()
    server.server_close()


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it."""
    import socket

    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return port


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove registry env vars that would leak into tests."""
    for key in ["CONSUL_RUL", "CONSUL_HTTP_TOKEN"]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def fixed_metadata(monkeypatch):
    """Keep registrations independent of the test host's hardware."""
    meta = {"hostname": "test-host", "gpus": "", "mem": "17.18GB"}
    monkeypatch.setattr("beacon.discovery.collect_metadata", lambda: dict(meta))
    return meta
