"""
Process runner for bootstrap commands and the MinerU API.

Spawns native processes, drains stdout/stderr line by line into the log
as output arrives, and exposes a handle for the long-running API process
that can terminate the whole process tree.
"""

import logging
import os
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import psutil

from .errors import LaunchError

logger = logging.getLogger(__name__)

# Upper bound for waiting on drain threads once the process has exited.
# A grandchild holding the pipes open must not hang the caller.
DRAIN_JOIN_TIMEOUT = 5.0


def _drain(stream, program: str, tag: str, level: int):
    """Forward every non-empty line of a stream to the log."""
    try:
        for line in iter(stream.readline, b""):
            decoded = line.decode("utf-8", errors="replace").rstrip()
            if not decoded:
                continue
            logger.log(level, f"[{tag}] {decoded}")
    except (OSError, ValueError) as e:
        logger.error(f"Error reading output of {program}: {e}")
    finally:
        try:
            stream.close()
        except OSError:
            pass


def _start_drain_threads(process: subprocess.Popen, program: str) -> list[threading.Thread]:
    """Start one daemon thread per output stream; stderr is logged at ERROR."""
    threads = [
        threading.Thread(
            target=_drain,
            args=(process.stdout, program, program, logging.INFO),
            name=f"{program}-stdout",
            daemon=True,
        ),
        threading.Thread(
            target=_drain,
            args=(process.stderr, program, f"{program}:stderr", logging.ERROR),
            name=f"{program}-stderr",
            daemon=True,
        ),
    ]
    for thread in threads:
        thread.start()
    return threads


@dataclass
class ProcessHandle:
    """A started process and the threads draining its output."""

    name: str
    process: subprocess.Popen
    drain_threads: list[threading.Thread] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    own_group: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    def poll(self) -> int | None:
        return self.process.poll()

    def wait(self, timeout: float = None) -> int:
        return self.process.wait(timeout=timeout)

    def terminate_tree(self, timeout: float) -> bool:
        """
        Send SIGTERM to the process and all of its descendants, then wait.

        Anything still alive after `timeout` seconds is killed. Returns True
        if the whole tree exited within the timeout.
        """
        # Once reaped, the PID may belong to an unrelated process
        children = []
        if self.process.poll() is None:
            try:
                children = psutil.Process(self.pid).children(recursive=True)
            except psutil.NoSuchProcess:
                pass

        for proc in children:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                pass

        if self.process.poll() is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass

        deadline = time.monotonic() + timeout
        exited = True

        try:
            self.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"{self.name} (PID {self.pid}) did not stop gracefully, forcing kill")
            self.process.kill()
            self.process.wait()
            exited = False

        _, alive = psutil.wait_procs(children, timeout=max(0.0, deadline - time.monotonic()))
        for proc in alive:
            try:
                logger.warning(f"Killing stubborn child process {proc.pid} of {self.name}")
                proc.kill()
            except psutil.NoSuchProcess:
                continue
            exited = False

        return exited

    def kill_group(self) -> bool:
        """
        SIGKILL whatever is left of the process group (POSIX only).

        The API runs in its own session, so its group outlives it when
        workers survive the parent. Returns True if anything was signalled.
        """
        if not self.own_group or sys.platform == "win32":
            return False
        try:
            os.killpg(self.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            return False
        logger.warning(f"Killed leftover processes in the process group of {self.name}")
        return True

    def close(self, timeout: float = DRAIN_JOIN_TIMEOUT):
        """
        Release the process: stop its tree if still running, kill leftovers
        of its process group, and join the drain threads.

        Blocking; bounded by roughly `timeout` for the stop plus `timeout`
        for the drain threads.
        """
        if self.process.poll() is None:
            logger.warning(f"{self.name} (PID {self.pid}) still running at release, stopping it")
            self.terminate_tree(timeout)

        self.kill_group()

        deadline = time.monotonic() + timeout
        for thread in self.drain_threads:
            thread.join(timeout=max(0.0, deadline - time.monotonic()))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class ProcessRunner:
    """Runs external commands with continuous output forwarding."""

    def _spawn(self, executable, args: list[str], cwd, new_session: bool) -> subprocess.Popen:
        cmd = [str(executable), *args]
        try:
            return subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
                env=os.environ.copy(),
                start_new_session=new_session,
            )
        except OSError as e:
            raise LaunchError(str(executable), e.strerror or str(e)) from e

    def run(self, executable, args: list[str], cwd=None) -> int:
        """Run a command to completion and return its exit code."""
        logger.info(f"Running: {executable} {' '.join(args)}")

        process = self._spawn(executable, args, cwd, new_session=False)
        threads = _start_drain_threads(process, Path(str(executable)).name)

        exit_code = process.wait()
        for thread in threads:
            thread.join(timeout=DRAIN_JOIN_TIMEOUT)

        logger.debug(f"{executable} exited with code {exit_code}")
        return exit_code

    def start(self, executable, args: list[str], cwd=None, name: str = None) -> ProcessHandle:
        """
        Start a command and return immediately.

        The process gets its own session (process group) so terminal signals
        reach the host first; the caller owns the returned handle.
        """
        logger.info(f"Starting: {executable} {' '.join(args)}")

        name = name or Path(str(executable)).name
        process = self._spawn(executable, args, cwd, new_session=True)
        threads = _start_drain_threads(process, name)

        logger.info(f"Started {name} with PID {process.pid}")
        return ProcessHandle(name=name, process=process, drain_threads=threads, own_group=True)
