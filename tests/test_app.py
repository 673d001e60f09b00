"""Command line entry point tests."""

from __future__ import annotations

import argparse
import json
import sys

import pytest

from promise_spawn import __version__
from promise_spawn.app import _exit_code, _parse_extra, build_parser, main
from promise_spawn.types import FailureReason, SpawnFailure, SpawnSuccess


# =============================================================================
# Parser Tests
# =============================================================================


class TestParser:
    """Test argument parsing."""

    def test_command_and_args(self):
        ns = build_parser().parse_args(["git", "log", "--oneline", "-n", "3"])

        assert ns.command == "git"
        assert ns.args == ["log", "--oneline", "-n", "3"]
        assert ns.inherit is False
        assert ns.cwd is None

    def test_options_before_command(self):
        ns = build_parser().parse_args(
            ["--cwd", "/tmp", "--inherit", "--extra", "a=1", "ls", "--extra", "b=2"]
        )

        assert ns.cwd == "/tmp"
        assert ns.inherit is True
        assert ns.extra == ["a=1"]
        # Everything after the command belongs to the command
        assert ns.args == ["--extra", "b=2"]

    def test_version(self, capsys: pytest.CaptureFixture[str]):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_parse_extra(self):
        extra = _parse_extra(["a=1", "name=bob", "flags=[true, null]", "eq=x=y"])

        assert extra == {"a": 1, "name": "bob", "flags": [True, None], "eq": "x=y"}

    @pytest.mark.parametrize("item", ["novalue", "=1"])
    def test_parse_extra_invalid(self, item: str):
        with pytest.raises(argparse.ArgumentTypeError):
            _parse_extra([item])


# =============================================================================
# Exit Code Tests
# =============================================================================


class TestExitCode:
    """Test mapping outcomes to the process exit code."""

    def test_success(self):
        assert _exit_code(SpawnSuccess(command="x", code=0)) == 0

    def test_nonzero_code(self):
        failure = SpawnFailure(
            command="x", code=7, message="command failed", reason=FailureReason.EXIT
        )
        assert _exit_code(failure) == 7

    def test_signal(self):
        failure = SpawnFailure(
            command="x", signal="SIGTERM", message="command failed", reason=FailureReason.EXIT
        )
        assert _exit_code(failure) == 1

    def test_launch_error(self):
        failure = SpawnFailure(
            command="x", message="not found", reason=FailureReason.LAUNCH
        )
        assert _exit_code(failure) == 1


# =============================================================================
# Main Tests
# =============================================================================


@pytest.mark.integration
class TestMain:
    """Test main() end to end with real child processes."""

    @pytest.mark.timeout(30)
    def test_success_json(self, fake_cli: list[str], capsys: pytest.CaptureFixture[str]):
        code = main(["--extra", "run=1", *fake_cli, "pass"])

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert data["kind"] == "success"
        assert data["code"] == 0
        assert data["signal"] is None
        assert data["stdout"] == "OK :)"
        assert data["stderr"] == ""
        assert data["command"] == sys.executable
        assert data["args"][-1] == "pass"
        assert data["run"] == 1
        assert "process" not in data

    @pytest.mark.timeout(30)
    def test_failure_json(self, fake_cli: list[str], capsys: pytest.CaptureFixture[str]):
        code = main([*fake_cli, "exit", "3"])

        data = json.loads(capsys.readouterr().out)
        assert code == 3
        assert data["kind"] == "failure"
        assert data["message"] == "command failed"
        assert data["reason"] == "exit"
        assert data["code"] == 3

    def test_launch_error_json(self, tmp_path, capsys: pytest.CaptureFixture[str]):
        code = main([str(tmp_path / "missing")])

        data = json.loads(capsys.readouterr().out)
        assert code == 1
        assert data["kind"] == "failure"
        assert data["reason"] == "launch"
        assert data["code"] is None

    @pytest.mark.timeout(30)
    def test_working_directory(
        self, fake_cli: list[str], tmp_path, capsys: pytest.CaptureFixture[str]
    ):
        code = main(["--cwd", str(tmp_path), *fake_cli, "cwd"])

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert data["stdout"] == str(tmp_path.resolve())

    def test_invalid_extra(self, fake_cli: list[str]):
        with pytest.raises(SystemExit) as exc_info:
            main(["--extra", "broken", *fake_cli, "pass"])
        assert exc_info.value.code == 2
