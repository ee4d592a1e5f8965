"""Shared fixtures for mineru_host tests."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from mineru_host.config import LaunchConfig, setup_marker_path, venv_dir
from mineru_host.process import ProcessHandle, ProcessRunner

# Child programs used in place of mineru-api
SLEEP_FOREVER = "import time\nwhile True:\n    time.sleep(0.1)"
EXIT_IMMEDIATELY = "print('bye')"


@pytest.fixture
def install_path(tmp_path: Path) -> Path:
    path = tmp_path / "install"
    path.mkdir()
    return path


@pytest.fixture
def ready_install(install_path: Path) -> Path:
    """An install path that already passed setup."""
    venv_dir(install_path).mkdir()
    setup_marker_path(install_path).write_text("2024-01-01T00:00:00+00:00")
    return install_path


def make_launch(install_path: Path, cleanup_interval: int = 0, host: str = "127.0.0.1", port: int = 9000) -> LaunchConfig:
    return LaunchConfig(
        host=host,
        port=port,
        install_path=install_path,
        cleanup_interval_minutes=cleanup_interval,
    )


class ScriptRunner(ProcessRunner):
    """Records what the supervisor asks to start, but runs a Python script instead."""

    def __init__(self, script: str):
        self.script = script
        self.started: list[tuple] = []
        self.handle: ProcessHandle | None = None

    def start(self, executable, args, cwd=None, name=None) -> ProcessHandle:
        self.started.append((executable, list(args), cwd))
        self.handle = super().start(sys.executable, ["-c", self.script], cwd=cwd, name=name)
        return self.handle


class RecordingBootstrapper:
    def __init__(self, error: Exception | None = None):
        self.calls: list[Path] = []
        self.error = error

    def bootstrap(self, install_path: Path):
        self.calls.append(install_path)
        if self.error:
            raise self.error


async def wait_for(predicate, timeout: float = 10.0):
    """Wait until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.02)
