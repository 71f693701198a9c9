"""
Pytest configuration and shared fixtures.
"""
import logging
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

# Make the package importable without installing it
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from netdiag.diagnostics.endpoints import Endpoint  # noqa: E402
from netdiag.diagnostics.probes import Outcome, ProbeKind, ProbeResult  # noqa: E402
from netdiag.network import AddressFamily  # noqa: E402
from netdiag.utils import Config  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Never read the developer's own ~/.netdiag/config.json."""
    monkeypatch.delenv("NETDIAG_CONFIG", raising=False)
    monkeypatch.setattr(Config, "_default_config_path",
                        staticmethod(lambda: tmp_path / "missing-config.json"))


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def make_result():
    """Build a ProbeResult for rule, report and status tests."""
    def factory(endpoint, kind, outcome=Outcome.SUCCESS, error=None, **kwargs):
        return ProbeResult(endpoint=endpoint, kind=kind, outcome=outcome, error=error, **kwargs)
    return factory


@pytest.fixture
def healthy_results(make_result):
    """All-success results for one endpoint."""
    def factory(name, with_http=True):
        kinds = [ProbeKind.DNS, ProbeKind.TCP] + ([ProbeKind.HTTP] if with_http else [])
        return [make_result(name, kind, elapsed_ms=10.0) for kind in kinds]
    return factory


@pytest.fixture
def endpoint_factory():
    def factory(name="ok-http", host="example.com", port=443, http_path="/",
                family=AddressFamily.ANY, **kwargs):
        return Endpoint(name=name, host=host, port=port, http_path=http_path,
                        family=family, **kwargs)
    return factory


class _Handler(BaseHTTPRequestHandler):
    """Loopback handler: / is fine, /error fails, /slow stalls, /trickle never finishes."""

    def do_GET(self):
        if self.path.startswith("/trickle"):
            self._trickle()
            return
        if self.path.startswith("/slow"):
            time.sleep(2.0)
        if self.path.startswith("/error"):
            body = b"internal error"
            self.send_response(500)
        else:
            body = b"hello from the loopback server " * 20
            self.send_response(200)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _trickle(self):
        # One header line every 0.2s: each read succeeds, the response never completes
        try:
            self.wfile.write(b"HTTP/1.1 200 OK\r\n")
            for _ in range(25):
                self.wfile.write(b"X-Pad: a\r\n")
                self.wfile.flush()
                time.sleep(0.2)
        except (BrokenPipeError, ConnectionResetError):
            pass
        self.close_connection = True

    def log_message(self, format, *args):
        pass


class _LoopbackServer(ThreadingHTTPServer):
    daemon_threads = True
    # Do not wait for stalled handlers on close
    block_on_close = False


@pytest.fixture
def http_server():
    """A loopback HTTP server; yields its base URL and port."""
    server = _LoopbackServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    try:
        yield f"http://{host}:{port}", port
    finally:
        server.shutdown()
        server.server_close()
