"""Tests for readiness wait conditions."""

from __future__ import annotations

import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from fixtureops.errors import (
    InvalidConfigError,
    OperationCancelledError,
    ResourceExitedError,
    WaitConditionTimeoutError,
)
from fixtureops.runtime import HttpWait, LogWait, PortWait, wait_for
from fixtureops.runtime.wait import DEFAULT_WAIT_TIMEOUT


class TestWaitConditionConfig:
    """Tests for constructor validation."""

    def test_interval_defaults_to_owner(self, make_target):
        """Test a condition without an interval uses the one passed by its owner."""
        condition = LogWait("ready", timeout=5)
        assert condition.poll_interval is None
        target = make_target()
        threading.Timer(0.2, lambda: target.lines.append("ready")).start()
        assert wait_for(condition, target, poll_interval=0.05) >= 3

    def test_own_interval_wins(self, make_target):
        target = make_target(lines=["ready"])
        assert wait_for(LogWait("ready", poll_interval=0.5), target, poll_interval=0.05) == 1

    @pytest.mark.parametrize("timeout", [0, -1])
    def test_non_positive_timeout(self, timeout):
        with pytest.raises(InvalidConfigError):
            PortWait(80, timeout=timeout)

    def test_non_positive_interval(self):
        with pytest.raises(InvalidConfigError):
            PortWait(80, poll_interval=0)

    def test_log_wait_validation(self):
        """Test empty patterns and zero occurrences are rejected."""
        with pytest.raises(InvalidConfigError):
            LogWait("")
        with pytest.raises(InvalidConfigError):
            LogWait("ready", occurrences=0)

    def test_http_path_normalised(self):
        assert HttpWait(80, path="health").path == "/health"

    def test_default_timeout_defers(self):
        """Test conditions leave the deadline to their owner by default."""
        assert HttpWait(80).timeout is None
        assert DEFAULT_WAIT_TIMEOUT == 60.0


class TestHttpWait:
    """Tests for HTTP readiness polling."""

    def test_succeeds_on_third_poll(self, http_server, make_target):
        """Test 503, 503, 200 is satisfied at the third poll within three intervals."""
        server = http_server(failures=2)
        condition = HttpWait(port=80, path="/health", timeout=5, poll_interval=0.1)

        started = time.monotonic()
        attempts = wait_for(condition, make_target(port=server.port))
        elapsed = time.monotonic() - started

        assert attempts == 3
        assert server.hits == ["/health"] * 3
        assert elapsed < 3 * 0.1 + 0.5

    def test_redirect_counts_as_ready(self, make_target):
        """Test a 3xx status is ready without following the redirect."""

        class Redirect(BaseHTTPRequestHandler):
            def log_message(self, format, *args):
                pass

            def do_GET(self):
                self.send_response(302)
                self.send_header("Location", "http://127.0.0.1:1/elsewhere")
                self.send_header("Content-Length", "0")
                self.end_headers()

        server = ThreadingHTTPServer(("127.0.0.1", 0), Redirect)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        try:
            target = make_target(port=server.server_address[1])
            assert wait_for(HttpWait(80, timeout=2, poll_interval=0.05), target) == 1
        finally:
            server.shutdown()
            server.server_close()

    def test_unpublished_port_keeps_polling(self, make_target):
        """Test an endpoint error is a failed poll, not a crash."""
        condition = HttpWait(80, timeout=0.3, poll_interval=0.05)
        with pytest.raises(WaitConditionTimeoutError):
            wait_for(condition, make_target(port=None))

    def test_connection_refused_times_out(self, make_target, port_factory):
        """Test a closed port fails within the deadline plus one interval."""
        condition = HttpWait(80, timeout=0.3, poll_interval=0.1, request_timeout=0.2)
        started = time.monotonic()
        with pytest.raises(WaitConditionTimeoutError) as exc_info:
            wait_for(condition, make_target(port=port_factory()))
        assert time.monotonic() - started < 0.3 + 0.1 + 0.5
        assert exc_info.value.attempts >= 2

    def test_silent_server_respects_deadline(self, make_target):
        """Test a server that accepts but never answers cannot stretch the deadline."""
        with socket.socket() as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen(8)
            condition = HttpWait(80, timeout=0.3, poll_interval=0.05)
            started = time.monotonic()
            with pytest.raises(WaitConditionTimeoutError):
                wait_for(condition, make_target(port=listener.getsockname()[1]))
            assert time.monotonic() - started < 0.3 + 0.05 + 0.15


class TestLogWait:
    """Tests for log-based readiness."""

    def test_substring_match(self, make_target):
        target = make_target(lines=["starting", "server is ready to accept"])
        assert wait_for(LogWait("ready to accept", timeout=1, poll_interval=0.05), target) == 1

    def test_regex_match(self, make_target):
        target = make_target(lines=["listening on port 5432"])
        condition = LogWait(r"port \d+", regex=True, timeout=1, poll_interval=0.05)
        assert wait_for(condition, target) == 1

    def test_cursor_only_reads_new_lines(self, make_target):
        """Test each poll reads from where the previous one stopped."""
        target = make_target(lines=["ready"])
        poller = LogWait("ready", occurrences=2).start(target)

        assert poller() is False
        assert poller() is False
        target.lines.append("noise")
        assert poller() is False
        target.lines.append("ready again")
        assert poller() is True

        assert target.offsets == [0, 1, 1, 2]
        assert poller.matched == 2

    def test_occurrences_across_polls(self, make_target):
        """Test matches accumulate over lines that arrive later."""
        target = make_target(lines=["ready"])
        condition = LogWait("ready", occurrences=2, timeout=2, poll_interval=0.05)
        threading.Timer(0.15, lambda: target.lines.append("ready")).start()
        assert wait_for(condition, target) >= 2

    def test_timeout_bound(self, make_target):
        """Test a never-matching wait fails within deadline plus one interval."""
        condition = LogWait("never", timeout=0.3, poll_interval=0.1)
        started = time.monotonic()
        with pytest.raises(WaitConditionTimeoutError) as exc_info:
            wait_for(condition, make_target(lines=["nope"]))
        elapsed = time.monotonic() - started
        assert 0.3 <= elapsed < 0.3 + 0.1 + 0.3
        assert exc_info.value.condition == "log text 'never' x1"

    def test_timeout_argument_overrides_condition(self, make_target):
        condition = LogWait("never", timeout=30, poll_interval=0.05)
        with pytest.raises(WaitConditionTimeoutError) as exc_info:
            wait_for(condition, make_target(), timeout=0.1)
        assert exc_info.value.timeout == 0.1


class TestPortWait:
    """Tests for TCP readiness."""

    def test_open_port(self, make_target):
        with socket.socket() as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen()
            target = make_target(port=listener.getsockname()[1])
            assert wait_for(PortWait(80, timeout=1, poll_interval=0.05), target) == 1

    def test_closed_port(self, make_target, port_factory):
        with pytest.raises(WaitConditionTimeoutError):
            wait_for(PortWait(80, timeout=0.2, poll_interval=0.05), make_target(port=port_factory()))


class TestWaitFor:
    """Tests for the polling loop itself."""

    def test_cancellation_is_prompt(self, make_target):
        """Test setting the cancel event interrupts a long sleep."""
        cancel = threading.Event()
        threading.Timer(0.1, cancel.set).start()
        started = time.monotonic()
        with pytest.raises(OperationCancelledError):
            wait_for(LogWait("never", timeout=30, poll_interval=10), make_target(), cancel)
        assert time.monotonic() - started < 1.0

    def test_already_cancelled(self, make_target):
        cancel = threading.Event()
        cancel.set()
        target = make_target(lines=["ready"])
        with pytest.raises(OperationCancelledError):
            wait_for(LogWait("ready", timeout=1), target, cancel)
        assert target.offsets == []

    def test_dead_target(self, make_target):
        """Test a target that died stops the wait at once."""
        with pytest.raises(ResourceExitedError) as exc_info:
            wait_for(LogWait("never", timeout=30, poll_interval=5), make_target(alive=False))
        assert exc_info.value.context.extra["attempts"] == 1
