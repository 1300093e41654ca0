"""HTTP health endpoint for processes that have no server of their own."""

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any


def _make_handler(endpoint: str):
    """Create a handler class answering on the given endpoint path."""
    path_ok = "/" + endpoint.strip("/")

    class HealthHTTPHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            # The registry polls every few seconds; keep stderr quiet
            pass

        def _json_response(self, data: Any, status: int = 200):
            body = json.dumps(data).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self):
            path = self.path.split("?", 1)[0].rstrip("/") or "/"
            if path == path_ok:
                self._json_response({"status": "ok"})
            else:
                self._json_response({"error": "not found"}, status=404)

    return HealthHTTPHandler


def start_health_server(
    host: str = "0.0.0.0",
    port: int = 8080,
    endpoint: str = "ok",
) -> ThreadingHTTPServer:
    """Start a ThreadingHTTPServer in a daemon thread and return the server."""
    handler = _make_handler(endpoint)
    server = ThreadingHTTPServer((host, port), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server
