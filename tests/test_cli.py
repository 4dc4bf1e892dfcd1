"""Tests for the fixtureops command line."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from fixtureops import __version__
from fixtureops.cli import cli
from fixtureops.errors import BinaryNotFoundError, DaemonUnreachableError
from fixtureops.preflight import AvailabilityResult, AvailabilityStatus, SystemKind
from fixtureops.telemetry.report import REPORT_FILENAME

AVAILABLE_DOCKER = AvailabilityResult(
    AvailabilityStatus.AVAILABLE, SystemKind.CONTAINER_RUNTIME, "Docker daemon is running"
)
AVAILABLE_WEAVER = AvailabilityResult(AvailabilityStatus.AVAILABLE, SystemKind.VALIDATION_BINARY, "weaver 0.19.0")
DOCKER_DOWN = AvailabilityResult(
    AvailabilityStatus.DAEMON_UNREACHABLE, SystemKind.CONTAINER_RUNTIME, "'docker info' exited with status 1"
)


@pytest.fixture
def runner(monkeypatch) -> CliRunner:
    monkeypatch.delenv("FIXTUREOPS_CONFIG", raising=False)
    return CliRunner()


@pytest.fixture
def probe_check():
    with patch("fixtureops.cli.main.AvailabilityProbe.check") as check:
        yield check


@pytest.fixture
def weaver_found(tmp_path):
    with patch("fixtureops.cli.main.locate_binary", return_value=tmp_path / "weaver") as locate:
        yield locate


class TestCli:
    """Tests for the command group."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("doctor", "sweep", "report"):
            assert command in result.output

    def test_invalid_config_file(self, runner, tmp_path):
        """Test a config file with invalid values exits 1 with the error."""
        config = tmp_path / "fixtureops.yaml"
        config.write_text("weaver_admin_port: 70000\n")
        result = runner.invoke(cli, ["--config", str(config), "report", str(tmp_path)])
        assert result.exit_code == 1
        assert "weaver_admin_port" in result.output


class TestDoctor:
    """Tests for fixtureops doctor."""

    def test_all_available(self, runner, probe_check, weaver_found):
        probe_check.side_effect = [AVAILABLE_DOCKER, AVAILABLE_WEAVER]
        result = runner.invoke(cli, ["doctor"])
        assert result.exit_code == 0
        assert "All checks passed" in result.output
        assert "weaver 0.19.0" in result.output

    def test_docker_down(self, runner, probe_check, weaver_found):
        """Test a failed check exits 1 and names the status."""
        probe_check.side_effect = [DOCKER_DOWN, AVAILABLE_WEAVER]
        result = runner.invoke(cli, ["doctor"])
        assert result.exit_code == 1
        assert "daemon_unreachable" in result.output
        assert "1 check(s) failed" in result.output

    def test_weaver_missing(self, runner, probe_check):
        """Test a weaver that cannot be located is reported as not found."""
        probe_check.side_effect = [AVAILABLE_DOCKER]
        error = BinaryNotFoundError(binary="weaver", attempts=["PATH"])
        with patch("fixtureops.cli.main.locate_binary", side_effect=error):
            result = runner.invoke(cli, ["doctor", "--json"])
        assert result.exit_code == 1
        payload = json.loads(result.output)
        assert payload["ready"] is False
        assert payload["checks"][1] == {
            "name": "Weaver binary",
            "status": "binary_not_found",
            "message": error.message,
        }

    def test_json_ready(self, runner, probe_check, weaver_found):
        probe_check.side_effect = [AVAILABLE_DOCKER, AVAILABLE_WEAVER]
        result = runner.invoke(cli, ["doctor", "--json"])
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["ready"] is True
        assert [c["status"] for c in payload["checks"]] == ["available", "available"]


class TestSweep:
    """Tests for fixtureops sweep."""

    def test_removed(self, runner):
        with patch("fixtureops.cli.main.sweep_orphans", return_value=["3f4e5d6c7b8a9f0e"]) as sweep:
            result = runner.invoke(cli, ["sweep"])
        assert result.exit_code == 0
        assert "Removed 1 container(s): 3f4e5d6c7b8a" in result.output
        sweep.assert_called_once_with(all_sessions=False, docker_binary="docker")

    def test_all_sessions(self, runner):
        with patch("fixtureops.cli.main.sweep_orphans", return_value=[]) as sweep:
            result = runner.invoke(cli, ["sweep", "--all-sessions"])
        assert result.exit_code == 0
        assert "No orphaned containers" in result.output
        assert sweep.call_args.kwargs["all_sessions"] is True

    def test_docker_error(self, runner):
        """Test docker failures are shown and exit 1."""
        with patch("fixtureops.cli.main.sweep_orphans", side_effect=DaemonUnreachableError("daemon down")):
            result = runner.invoke(cli, ["sweep"])
        assert result.exit_code == 1
        assert "daemon down" in result.output


class TestReport:
    """Tests for fixtureops report."""

    def write_report(self, directory, advice: list[dict]) -> None:
        lines = [
            json.dumps({"live_check_result": {"all_advice": advice}}),
            json.dumps({"advice_level_counts": {}, "total_entities": 1, "total_advisories": len(advice)}),
        ]
        (directory / REPORT_FILENAME).write_text("\n".join(lines) + "\n")

    def test_clean_report(self, runner, tmp_path):
        self.write_report(tmp_path, [])
        result = runner.invoke(cli, ["report", str(tmp_path)])
        assert result.exit_code == 0
        assert "No Weaver live-check violations detected." in result.output
        assert "1 entities" in result.output

    def test_violations_exit_1(self, runner, tmp_path):
        self.write_report(
            tmp_path,
            [
                {
                    "advice_level": "violation",
                    "advice_type": "missing_attribute",
                    "message": "http.method is required",
                    "signal_type": "span",
                    "signal_name": "GET /users",
                }
            ],
        )
        result = runner.invoke(cli, ["report", str(tmp_path)])
        assert result.exit_code == 1
        assert "- [span:GET /users] missing_attribute :: http.method is required" in result.output

    def test_missing_report(self, runner, tmp_path):
        result = runner.invoke(cli, ["report", str(tmp_path)])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_default_directory_from_settings(self, runner, tmp_path, monkeypatch):
        """Test the report directory defaults to weaver_output_dir."""
        self.write_report(tmp_path, [])
        monkeypatch.setenv("FIXTUREOPS_WEAVER_OUTPUT_DIR", str(tmp_path))
        result = runner.invoke(cli, ["report"])
        assert result.exit_code == 0
