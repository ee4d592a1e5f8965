"""
Supervision of the MinerU API process.

One session: make sure the environment is bootstrapped, start the output
cleanup cadence, launch mineru-api, then wait for whichever comes first,
the API exiting or a shutdown request. The API is meant to run forever, so
any exit while no shutdown was requested is fatal, exit code 0 included.
"""

import asyncio
import logging
import threading
from enum import Enum
from pathlib import Path

from .bootstrap import EnvironmentBootstrapper, is_setup_complete
from .cleaner import cleanup_schedule
from .config import API_EXECUTABLE_NAME, LaunchConfig, config, venv_executable
from .errors import UnexpectedExitError
from .process import ProcessHandle, ProcessRunner

logger = logging.getLogger(__name__)


class SupervisorState(Enum):
    IDLE = "idle"
    SETTING_UP = "setting_up"
    LAUNCHING = "launching"
    RUNNING = "running"
    GRACEFUL_SHUTDOWN = "graceful_shutdown"
    CRASHED = "crashed"
    TERMINATED = "terminated"


def api_executable_path(install_path: Path) -> Path:
    """Path of the mineru-api launcher inside the install's venv."""
    return venv_executable(install_path, API_EXECUTABLE_NAME)


class ProcessSupervisor:
    """Runs a single supervisory session for the MinerU API."""

    def __init__(
        self,
        runner: ProcessRunner = None,
        bootstrapper: EnvironmentBootstrapper = None,
        shutdown_timeout: float = None,
        is_ready=is_setup_complete,
        cleanup_factory=cleanup_schedule,
    ):
        self.runner = runner or ProcessRunner()
        self.bootstrapper = bootstrapper or EnvironmentBootstrapper(
            self.runner, config.python_executable, config.package_spec
        )
        self.shutdown_timeout = config.shutdown_timeout if shutdown_timeout is None else shutdown_timeout
        self._is_ready = is_ready
        self._cleanup_factory = cleanup_factory
        self.state = SupervisorState.IDLE

    def _transition(self, state: SupervisorState):
        logger.debug(f"Supervisor state {self.state.value} -> {state.value}")
        self.state = state

    async def run(self, launch: LaunchConfig, stop_event: asyncio.Event):
        """
        Run the session until `stop_event` is set or the API exits.

        Returns normally after a requested shutdown. Raises SetupError,
        LaunchError or UnexpectedExitError for fatal outcomes. The cleanup
        scheduler and the process handle are released on every path.
        """
        logger.info("MinerU Host starting...")
        logger.info(f"Install Path: {launch.install_path}")
        logger.info(f"Host: {launch.host}, Port: {launch.port}")
        logger.info(f"Cleanup Interval: {launch.cleanup_interval_minutes} minutes")

        self._transition(SupervisorState.IDLE)
        try:
            await self._ensure_setup(launch.install_path)

            async with self._cleanup_factory(launch.install_path, launch.cleanup_interval_minutes):
                self._transition(SupervisorState.LAUNCHING)
                logger.info("Starting MinerU API...")
                handle = self.runner.start(
                    api_executable_path(launch.install_path),
                    launch.api_arguments,
                    cwd=launch.install_path,
                    name=API_EXECUTABLE_NAME,
                )
                try:
                    self._transition(SupervisorState.RUNNING)
                    await self._supervise(handle, stop_event)
                finally:
                    await self._release(handle)
        finally:
            self._transition(SupervisorState.TERMINATED)

    async def _ensure_setup(self, install_path: Path):
        if self._is_ready(install_path):
            logger.info("Setup already complete. Skipping setup.")
            return

        self._transition(SupervisorState.SETTING_UP)
        logger.info("Setup not complete. Running setup...")
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.bootstrapper.bootstrap, install_path)

    async def _supervise(self, handle: ProcessHandle, stop_event: asyncio.Event):
        """Race the API's exit against the shutdown request."""
        exited = self._watch_exit(handle)
        stop_requested = asyncio.ensure_future(stop_event.wait())

        try:
            done, _ = await asyncio.wait({exited, stop_requested}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            logger.info("Session task cancelled")
            await self._shutdown(handle)
            raise
        finally:
            stop_requested.cancel()

        if stop_requested in done:
            await self._shutdown(handle)
            return

        exit_code = exited.result()
        self._transition(SupervisorState.CRASHED)
        logger.warning(f"MinerU API process exited with code {exit_code}")
        raise UnexpectedExitError(exit_code)

    def _watch_exit(self, handle: ProcessHandle) -> asyncio.Future:
        """Resolve a future with the exit code once the process exits."""
        loop = asyncio.get_running_loop()
        exited = loop.create_future()

        def resolve(exit_code: int):
            if not exited.done():
                exited.set_result(exit_code)

        def watch():
            exit_code = handle.wait()
            try:
                loop.call_soon_threadsafe(resolve, exit_code)
            except RuntimeError:
                # Event loop already closed
                logger.debug(f"{handle.name} exited with code {exit_code} after the session ended")

        threading.Thread(target=watch, name=f"{handle.name}-exit-watcher", daemon=True).start()
        return exited

    async def _shutdown(self, handle: ProcessHandle):
        self._transition(SupervisorState.GRACEFUL_SHUTDOWN)
        logger.info("Shutdown requested. Stopping MinerU API...")

        loop = asyncio.get_running_loop()
        exited = await loop.run_in_executor(None, handle.terminate_tree, self.shutdown_timeout)
        if exited:
            logger.info("MinerU API stopped")
        else:
            logger.warning(
                f"MinerU API did not exit within {self.shutdown_timeout:g}s, forced kill issued"
            )

    async def _release(self, handle: ProcessHandle):
        """Stop leftovers of the API's process group and join its drain threads."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, handle.close, self.shutdown_timeout)
