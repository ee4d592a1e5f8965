"""Unit tests for mineru_host.process."""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path

import psutil
import pytest

from mineru_host.errors import LaunchError
from mineru_host.process import ProcessRunner

IS_WINDOWS = sys.platform == "win32"


@pytest.fixture
def runner() -> ProcessRunner:
    return ProcessRunner()


def _gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


class TestRun:
    def test_returns_exit_code(self, runner, tmp_path):
        assert runner.run(sys.executable, ["-c", "import sys; sys.exit(3)"], cwd=tmp_path) == 3

    def test_zero_exit(self, runner, tmp_path):
        assert runner.run(sys.executable, ["-c", "pass"], cwd=tmp_path) == 0

    def test_output_is_logged_per_stream(self, runner, tmp_path, caplog):
        caplog.set_level(logging.INFO, logger="mineru_host.process")
        script = (
            "import sys\n"
            "print('hello')\n"
            "print()\n"
            "print('world')\n"
            "print('oops', file=sys.stderr)\n"
        )

        runner.run(sys.executable, ["-c", script], cwd=tmp_path)

        out = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO and "] " in r.getMessage()]
        err = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
        assert [m for m in out if m.endswith(("hello", "world"))] == [
            f"[{Path(sys.executable).name}] hello",
            f"[{Path(sys.executable).name}] world",
        ]
        assert err == [f"[{Path(sys.executable).name}:stderr] oops"]

    def test_verbose_child_does_not_deadlock(self, runner, tmp_path):
        script = "import sys\nfor i in range(20000):\n    print('x' * 80)\n    print('y' * 80, file=sys.stderr)\n"
        assert runner.run(sys.executable, ["-c", script], cwd=tmp_path) == 0

    def test_missing_executable(self, runner, tmp_path):
        with pytest.raises(LaunchError) as excinfo:
            runner.run(tmp_path / "no-such-binary", [], cwd=tmp_path)
        assert "no-such-binary" in str(excinfo.value)

    def test_missing_working_directory(self, runner, tmp_path):
        with pytest.raises(LaunchError):
            runner.run(sys.executable, ["-c", "pass"], cwd=tmp_path / "missing")

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX permissions")
    def test_not_executable(self, runner, tmp_path):
        script = tmp_path / "script.sh"
        script.write_text("#!/bin/sh\necho hi\n")
        script.chmod(0o644)
        with pytest.raises(LaunchError):
            runner.run(script, [], cwd=tmp_path)


class TestStart:
    def test_returns_running_handle(self, runner, tmp_path):
        handle = runner.start(sys.executable, ["-c", "import time; time.sleep(30)"], cwd=tmp_path, name="api")
        with handle:
            assert handle.name == "api"
            assert handle.pid > 0
            assert handle.poll() is None
            assert handle.terminate_tree(5) is True
            assert handle.returncode is not None

    def test_missing_executable(self, runner, tmp_path):
        with pytest.raises(LaunchError):
            runner.start(tmp_path / "mineru-api", ["--port", "1"], cwd=tmp_path)

    def test_wait_returns_exit_code(self, runner, tmp_path):
        with runner.start(sys.executable, ["-c", "import sys; sys.exit(7)"], cwd=tmp_path) as handle:
            assert handle.wait(timeout=10) == 7

    def test_close_stops_running_process(self, runner, tmp_path):
        handle = runner.start(sys.executable, ["-c", "import time; time.sleep(30)"], cwd=tmp_path)
        handle.close()
        assert handle.poll() is not None

    @pytest.mark.skipif(IS_WINDOWS, reason="SIGTERM semantics")
    def test_terminate_tree_kills_process_ignoring_sigterm(self, runner, tmp_path, caplog):
        script = (
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "while True:\n"
            "    time.sleep(0.1)\n"
        )
        with runner.start(sys.executable, ["-c", script], cwd=tmp_path, name="stubborn") as handle:
            time.sleep(0.5)
            assert handle.terminate_tree(0.5) is False
            assert handle.wait(timeout=5) != 0
        assert "forcing kill" in caplog.text

    @pytest.mark.skipif(IS_WINDOWS, reason="process tree semantics")
    def test_terminate_tree_reaches_grandchildren(self, runner, tmp_path):
        pid_file = tmp_path / "grandchild.pid"
        script = (
            "import subprocess, sys, time\n"
            "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
            f"open({str(pid_file)!r}, 'w').write(str(child.pid))\n"
            "time.sleep(60)\n"
        )
        with runner.start(sys.executable, ["-c", script], cwd=tmp_path) as handle:
            deadline = time.monotonic() + 10
            while not pid_file.exists() or not pid_file.read_text():
                assert time.monotonic() < deadline
                time.sleep(0.05)
            grandchild = int(pid_file.read_text())

            handle.terminate_tree(5)

        deadline = time.monotonic() + 5
        while not _gone(grandchild):
            assert time.monotonic() < deadline
            time.sleep(0.05)

    @pytest.mark.skipif(IS_WINDOWS, reason="process group semantics")
    def test_close_kills_leftover_group_and_returns_within_timeout(self, runner, tmp_path, caplog):
        pid_file = tmp_path / "worker.pid"
        script = (
            "import subprocess, sys\n"
            "worker = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
            f"open({str(pid_file)!r}, 'w').write(str(worker.pid))\n"
        )
        handle = runner.start(sys.executable, ["-c", script], cwd=tmp_path, name="api")
        assert handle.wait(timeout=10) == 0
        worker = int(pid_file.read_text())

        started = time.monotonic()
        handle.close(timeout=1)

        assert time.monotonic() - started < 3
        assert not any(thread.is_alive() for thread in handle.drain_threads)
        assert "Killed leftover processes" in caplog.text
        deadline = time.monotonic() + 5
        while not _gone(worker):
            assert time.monotonic() < deadline
            time.sleep(0.05)

    def test_started_process_owns_its_group(self, runner, tmp_path):
        with runner.start(sys.executable, ["-c", "pass"], cwd=tmp_path) as handle:
            handle.wait(timeout=10)
        assert handle.own_group is True

    def test_kill_group_skips_handles_without_a_group(self, runner, tmp_path):
        with runner.start(sys.executable, ["-c", "pass"], cwd=tmp_path) as handle:
            handle.wait(timeout=10)
            handle.own_group = False
            assert handle.kill_group() is False
