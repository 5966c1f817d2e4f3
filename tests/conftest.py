"""Shared fixtures for the runpod_boss test suite."""

import sys
import time
from pathlib import Path

import pytest

from runpod_boss.local.config import load_settings
from runpod_boss.local.supervisor.services import ServiceSpec

SLEEPER_SCRIPT = """
import pathlib, signal, sys, time
log = pathlib.Path({log!r})
def _stop(signum, frame):
    with log.open("a") as f:
        f.write("TERM\\n")
    time.sleep({term_delay})
    sys.exit(0)
signal.signal(signal.SIGTERM, _stop)
pathlib.Path({ready!r}).touch()
while True:
    time.sleep(0.05)
"""


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a throwaway workspace, tuned for fast tests."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return load_settings(
        overrides_path=tmp_path / "overrides.json",
        WORKSPACE_DIR=workspace,
        RUNPOD_HANDLER=tmp_path / "start.sh",
        APP_PROFILE="combined",
        GPU_PROFILE="rtx4090",
        LINK_CONFLICT_POLICY="keep-destination",
        CAPTURE_SERVICE_OUTPUT=False,
        GRACEFUL_SHUTDOWN_TIMEOUT=10,
        SUPERVISOR_POLL_INTERVAL=0.05,
        WARMUP_DELAY_SECONDS=0,
        REINSTALL_RUNTIME_BINARIES=False,
    )


class Sleeper:
    """A service that runs until SIGTERM, then takes `term_delay` seconds to exit 0."""

    def __init__(self, root: Path, name: str, term_delay: float) -> None:
        self.name = name
        self.ready = root / f"{name}.ready"
        self.term_log = root / f"{name}.term"
        script = SLEEPER_SCRIPT.format(log=str(self.term_log), term_delay=term_delay, ready=str(self.ready))
        self.spec = ServiceSpec(name, (sys.executable, "-c", script), root)

    def wait_ready(self, timeout: float = 10) -> None:
        deadline = time.monotonic() + timeout
        while not self.ready.exists():
            if time.monotonic() > deadline:
                raise AssertionError(f"{self.name} never became ready")
            time.sleep(0.02)

    @property
    def term_count(self) -> int:
        if not self.term_log.exists():
            return 0
        return len(self.term_log.read_text().splitlines())


@pytest.fixture
def sleeper(tmp_path):
    """Factory for Sleeper services living in tmp_path."""
    root = tmp_path / "services"
    root.mkdir()

    def _make(name: str, term_delay: float = 0.0) -> Sleeper:
        return Sleeper(root, name, term_delay)

    return _make
