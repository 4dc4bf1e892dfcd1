"""Pytest fixtures for fixtureops tests."""

from __future__ import annotations

import socket
import stat
import sys
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from fixtureops.config import FixtureOpsSettings
from fixtureops.live.process import LiveCheckConfig
from fixtureops.runtime.registry import ResourceRegistry

# Stand-in for the weaver executable. It answers --version and
# `registry check`, and for `registry live-check` it serves the admin
# endpoints plus an OTLP/HTTP JSON ingest endpoint, then writes a report
# when stopped or idle. FAKE_WEAVER_MODE selects misbehaviour.
FAKE_WEAVER_SCRIPT = r'''#!{python}
import json
import os
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer


def arg(name, default=None):
    if name in sys.argv:
        return sys.argv[sys.argv.index(name) + 1]
    return default


if "--version" in sys.argv:
    print("weaver 0.19.0")
    sys.exit(0)

if sys.argv[1:3] == ["registry", "check"]:
    registry = arg("-r")
    if os.path.exists(os.path.join(registry, "invalid")):
        print("registry is invalid", file=sys.stderr)
        sys.exit(1)
    print("registry ok")
    sys.exit(0)

mode = os.environ.get("FAKE_WEAVER_MODE", "ok")
if mode == "crash":
    print("fatal: cannot load registry", flush=True)
    sys.exit(3)

admin_port = int(arg("--admin-port"))
ingest_port = int(arg("--otlp-grpc-port"))
output = arg("--output")
inactivity = float(arg("--inactivity-timeout"))

stop = threading.Event()
last_activity = [time.monotonic()]
received = []


class Admin(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass

    def do_GET(self):
        code = 200 if self.path == "/health" and mode != "unhealthy" else 503
        self.send_response(code)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_POST(self):
        self.send_response(200 if self.path == "/stop" else 404)
        self.send_header("Content-Length", "0")
        self.end_headers()
        if self.path == "/stop":
            stop.set()


class Ingest(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        body = json.loads(self.rfile.read(length) or b"{}")
        for resource_spans in body.get("resourceSpans", []):
            for scope_spans in resource_spans.get("scopeSpans", []):
                received.extend(scope_spans.get("spans", []))
        last_activity[0] = time.monotonic()
        payload = b"{}"
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)


servers = [
    ThreadingHTTPServer(("127.0.0.1", admin_port), Admin),
    ThreadingHTTPServer(("127.0.0.1", ingest_port), Ingest),
]
for server in servers:
    threading.Thread(target=server.serve_forever, daemon=True).start()
print("live-check listening", flush=True)

while not stop.wait(0.05):
    if time.monotonic() - last_activity[0] > inactivity:
        break

os.makedirs(output, exist_ok=True)
violations = 0
with open(os.path.join(output, "live_check.json"), "w") as f:
    for span in received:
        keys = {attribute["key"] for attribute in span.get("attributes", [])}
        advice = []
        if "http.method" not in keys:
            violations += 1
            advice.append({
                "advice_level": "violation",
                "advice_type": "missing_attribute",
                "message": "Attribute 'http.method' is required",
                "signal_type": "span",
                "signal_name": span["name"],
                "advice_context": {"attribute_name": "http.method"},
            })
        f.write(json.dumps({"live_check_result": {"all_advice": advice}}) + "\n")
    f.write(json.dumps({
        "advice_level_counts": {"violation": violations},
        "total_entities": len(received),
        "total_advisories": violations,
    }) + "\n")

for server in servers:
    server.shutdown()
'''


def free_port() -> int:
    """A TCP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@dataclass
class FakeTarget:
    """In-memory wait target."""

    port: int | None = None
    lines: list[str] = field(default_factory=list)
    alive: bool = True
    offsets: list[int] = field(default_factory=list)

    def endpoint(self, port: int) -> tuple[str, int]:
        if self.port is None:
            raise ConnectionError(f"port {port} is not published yet")
        return "127.0.0.1", self.port

    def read_logs(self, offset: int) -> list[str]:
        self.offsets.append(offset)
        return self.lines[offset:]

    def is_alive(self) -> bool:
        return self.alive


@dataclass
class RunningServer:
    port: int
    hits: list[str]


@pytest.fixture
def http_server():
    """Factory for local HTTP servers answering 503 ``failures`` times, then 200."""
    servers: list[ThreadingHTTPServer] = []

    def start(failures: int = 0) -> RunningServer:
        running = RunningServer(port=0, hits=[])

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format, *args):
                pass

            def do_GET(self):
                running.hits.append(self.path)
                self.send_response(503 if len(running.hits) <= failures else 200)
                self.send_header("Content-Length", "0")
                self.end_headers()

        server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        running.port = server.server_address[1]
        return running

    yield start

    for server in servers:
        server.shutdown()
        server.server_close()


@pytest.fixture
def settings(tmp_path: Path) -> FixtureOpsSettings:
    """Settings with short intervals so tests stay fast."""
    return FixtureOpsSettings(
        probe_timeout=10.0,
        poll_interval=0.05,
        wait_timeout=5.0,
        exec_timeout=5.0,
        stop_grace_period=5.0,
        health_check_attempts=50,
        health_check_interval=0.1,
        weaver_output_dir=str(tmp_path / "reports"),
    )


@pytest.fixture
def registry() -> ResourceRegistry:
    """A resource registry isolated from the process-wide one."""
    return ResourceRegistry()


@pytest.fixture
def fake_weaver(tmp_path: Path) -> Path:
    """Executable fake weaver binary."""
    path = tmp_path / "bin" / "weaver"
    path.parent.mkdir()
    path.write_text(FAKE_WEAVER_SCRIPT.replace("{python}", sys.executable))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def semconv_registry(tmp_path: Path) -> Path:
    path = tmp_path / "registry"
    path.mkdir()
    (path / "registry_manifest.yaml").write_text("name: test\n")
    return path


@pytest.fixture
def live_config(tmp_path: Path, fake_weaver: Path, semconv_registry: Path) -> LiveCheckConfig:
    return LiveCheckConfig(
        registry_path=str(semconv_registry),
        ingest_port=free_port(),
        admin_port=free_port(),
        inactivity_timeout=60,
        output_dir=str(tmp_path / "reports"),
        binary=str(fake_weaver),
    )


@pytest.fixture
def make_target():
    """The FakeTarget class, for tests that need several targets."""
    return FakeTarget


@pytest.fixture
def port_factory():
    return free_port
