"""Config-driven launcher for hypibole.

Reads the YAML configuration, renders it as daemon flags and keeps the daemon
running according to the configured restart policy.
"""

from __future__ import annotations

import argparse
import logging
import signal
import subprocess
import sys
import time
from typing import List, Optional, Sequence

from .config import DEFAULT_CONFIG_PATH, RESTART_POLICIES, ConfigError, ServiceConfig, config_to_args, load_config
from .daemon import configure_logging

LOGGER = logging.getLogger(__name__)


class ServiceSupervisor:
    """Run a child process and restart it per policy (always | on-failure | never)."""

    def __init__(
        self,
        command: Sequence[str],
        restart_policy: str = "on-failure",
        restart_backoff_ms: int = 2000,
        shutdown_timeout_ms: int = 5000,
        poll_interval: float = 0.05,
    ) -> None:
        if not command:
            raise ValueError("Service command is empty")
        if restart_policy not in RESTART_POLICIES:
            raise ValueError(f"Unknown restart policy {restart_policy!r}")
        self._command = [str(part) for part in command]
        self._restart_policy = restart_policy
        self._backoff_s = max(int(restart_backoff_ms), 0) / 1000.0
        self._shutdown_timeout_s = max(int(shutdown_timeout_ms), 0) / 1000.0
        self._poll_interval = poll_interval
        self._stopping = False
        self._process: Optional[subprocess.Popen] = None
        self._restart_count = 0
        self._last_exit_code: Optional[int] = None

    @property
    def restart_count(self) -> int:
        return self._restart_count

    @property
    def last_exit_code(self) -> Optional[int]:
        return self._last_exit_code

    def run(self) -> int:
        """Block until the child stops for good; return its last exit code."""
        while not self._stopping:
            LOGGER.info("Starting service: %s", " ".join(self._command))
            self._process = subprocess.Popen(self._command, stdin=subprocess.DEVNULL)
            rc = self._wait(self._process)
            self._process = None
            self._last_exit_code = rc

            if self._stopping:
                break
            if not self._should_restart(rc):
                if rc != 0:
                    LOGGER.warning("Service exited (rc=%s) and restart policy %s prevents restart", rc, self._restart_policy)
                break

            LOGGER.warning("Service exited (rc=%s); restarting after %.3fs", rc, self._backoff_s)
            deadline = time.monotonic() + self._backoff_s
            while not self._stopping and time.monotonic() < deadline:
                time.sleep(self._poll_interval)
            if self._stopping:
                break
            self._restart_count += 1
        return self._last_exit_code if self._last_exit_code is not None else 0

    def stop(self, _signum=None, _frame=None) -> None:
        """Ask the child to terminate; usable directly as a signal handler."""
        self._stopping = True
        proc = self._process
        if proc is not None and proc.poll() is None:
            LOGGER.info("Stopping service pid=%s", proc.pid)
            proc.terminate()

    def _wait(self, proc: subprocess.Popen) -> int:
        kill_at: Optional[float] = None
        while True:
            rc = proc.poll()
            if rc is not None:
                return int(rc)
            if self._stopping:
                now = time.monotonic()
                if kill_at is None:
                    proc.terminate()
                    kill_at = now + self._shutdown_timeout_s
                elif now >= kill_at:
                    LOGGER.warning("Service did not exit in time; killing pid=%s", proc.pid)
                    proc.kill()
                    kill_at = float("inf")
            time.sleep(self._poll_interval)

    def _should_restart(self, rc: int) -> bool:
        if self._restart_policy == "never":
            return False
        if self._restart_policy == "on-failure":
            return rc != 0
        return True


def build_command(config: ServiceConfig, executable: Optional[str] = None, log_level: str = "INFO") -> List[str]:
    """Render the daemon command line for a configuration."""
    base = [executable] if executable else [sys.executable, "-m", "hypibole.daemon"]
    return base + config_to_args(config) + ["--log-level", log_level]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Launch and supervise hypibole from a configuration file")
    parser.add_argument("config", nargs="?", default=DEFAULT_CONFIG_PATH, help="Path to YAML configuration")
    parser.add_argument("--executable", default=None, help="hypibole executable (default: this interpreter)")
    parser.add_argument("--log-level", default="INFO", help="Logging level for launcher and service")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 2

    supervisor = ServiceSupervisor(
        build_command(config, args.executable, args.log_level),
        restart_policy=config.launcher.restart_policy,
        restart_backoff_ms=config.launcher.restart_backoff_ms,
    )
    signal.signal(signal.SIGTERM, supervisor.stop)
    signal.signal(signal.SIGINT, supervisor.stop)

    try:
        rc = supervisor.run()
    except OSError as exc:
        LOGGER.error("Failed to spawn hypibole: %s", exc)
        return 127
    if rc != 0:
        LOGGER.error("hypibole exited with code %s", rc)
    return rc if rc >= 0 else 128 - rc


if __name__ == "__main__":
    raise SystemExit(main())
