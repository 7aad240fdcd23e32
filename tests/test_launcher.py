"""
Tests for the supervising launcher. Children are short-lived interpreter
processes so restart policies run for real.
"""
import sys
import threading
import time
from unittest.mock import patch

import pytest

from hypibole import launcher
from hypibole.config import ServiceConfig
from hypibole.launcher import ServiceSupervisor, build_command


def child(code):
    return [sys.executable, "-c", code]


COUNTING_CHILD = """
import pathlib, sys
path = pathlib.Path(sys.argv[1])
runs = int(path.read_text()) + 1 if path.exists() else 1
path.write_text(str(runs))
sys.exit(0 if runs >= 3 else 1)
"""


# ──────────────────────────── Restart policy ──────────────────────────

class TestServiceSupervisor:
    def test_never_returns_child_exit_code(self):
        supervisor = ServiceSupervisor(child("import sys; sys.exit(3)"), restart_policy="never", poll_interval=0.01)
        assert supervisor.run() == 3
        assert supervisor.restart_count == 0

    def test_on_failure_restarts_until_clean_exit(self, tmp_path):
        counter = tmp_path / "runs"
        command = child(COUNTING_CHILD) + [str(counter)]
        supervisor = ServiceSupervisor(command, restart_policy="on-failure", restart_backoff_ms=0, poll_interval=0.01)
        assert supervisor.run() == 0
        assert counter.read_text() == "3"
        assert supervisor.restart_count == 2

    def test_on_failure_does_not_restart_clean_exit(self):
        supervisor = ServiceSupervisor(child("pass"), restart_policy="on-failure", poll_interval=0.01)
        assert supervisor.run() == 0
        assert supervisor.restart_count == 0

    @pytest.mark.parametrize(
        "policy, rc, expected",
        [
            ("always", 0, True),
            ("always", 1, True),
            ("on-failure", 0, False),
            ("on-failure", -15, True),
            ("never", 1, False),
        ],
    )
    def test_should_restart(self, policy, rc, expected):
        assert ServiceSupervisor(["true"], restart_policy=policy)._should_restart(rc) is expected

    def test_stop_terminates_running_child(self):
        supervisor = ServiceSupervisor(
            child("import time; time.sleep(30)"), restart_policy="always", poll_interval=0.01
        )
        result = {}
        thread = threading.Thread(target=lambda: result.setdefault("rc", supervisor.run()))
        started = time.monotonic()
        thread.start()

        deadline = time.monotonic() + 5
        while supervisor._process is None and time.monotonic() < deadline:
            time.sleep(0.01)
        supervisor.stop()
        thread.join(timeout=10)

        assert not thread.is_alive()
        assert result["rc"] != 0
        assert supervisor.restart_count == 0
        assert time.monotonic() - started < 10

    @pytest.mark.parametrize("command, policy", [([], "never"), (["true"], "sometimes")])
    def test_invalid_arguments(self, command, policy):
        with pytest.raises(ValueError):
            ServiceSupervisor(command, restart_policy=policy)


# ──────────────────────────── Entry point ──────────────────────────

class TestLauncherMain:
    def test_build_command_defaults_to_module(self):
        command = build_command(ServiceConfig(), log_level="DEBUG")
        assert command[:3] == [sys.executable, "-m", "hypibole.daemon"]
        assert command[-2:] == ["--log-level", "DEBUG"]
        assert "--port" in command

    def test_build_command_with_executable(self):
        assert build_command(ServiceConfig(), executable="/usr/bin/hypibole")[0] == "/usr/bin/hypibole"

    def test_missing_config_exits_2(self, tmp_path):
        assert launcher.main([str(tmp_path / "nope.yaml")]) == 2

    def test_unspawnable_executable_exits_127(self, tmp_path):
        path = tmp_path / "hypibole.yaml"
        path.write_text("launcher:\n  restart_policy: never\n")
        with patch("hypibole.launcher.signal.signal"):
            rc = launcher.main([str(path), "--executable", str(tmp_path / "missing-binary")])
        assert rc == 127

    def test_child_exit_code_propagates(self, tmp_path):
        script = tmp_path / "fake-daemon"
        script.write_text(f"#!{sys.executable}\nimport sys\nsys.exit(4)\n")
        script.chmod(0o755)
        path = tmp_path / "hypibole.yaml"
        path.write_text("launcher:\n  restart_policy: never\n")
        with patch("hypibole.launcher.signal.signal"):
            assert launcher.main([str(path), "--executable", str(script)]) == 4
