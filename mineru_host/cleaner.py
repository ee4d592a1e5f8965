"""
Periodic purge of the MinerU output directory.

The API writes parse results under <install path>/output/. The cleanup
scheduler empties that directory on a fixed cadence while the API keeps
running. Sweeps are best effort: an entry that cannot be deleted is logged
and skipped.
"""

import asyncio
import logging
import os
import shutil
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from .config import output_dir

logger = logging.getLogger(__name__)


def _is_directory_link(entry: os.DirEntry) -> bool:
    """Windows symlink or junction pointing at a directory; removed with rmdir."""
    if sys.platform != "win32":
        return False
    if entry.is_symlink() and entry.is_dir():
        return True
    is_junction = getattr(entry, "is_junction", None)
    return bool(is_junction and is_junction())


def clean_output_directory(install_path: Path):
    """Delete everything inside the output directory, keeping the directory."""
    output_path = output_dir(install_path)

    if not output_path.is_dir():
        logger.debug("Output directory does not exist. Skipping cleanup.")
        return

    try:
        logger.info(f"Cleaning up output directory: {output_path}")

        with os.scandir(output_path) as entries:
            items = list(entries)

        for entry in items:
            try:
                if _is_directory_link(entry):
                    os.rmdir(entry.path)
                    logger.debug(f"Deleted link: {entry.name}")
                elif entry.is_dir(follow_symlinks=False):
                    shutil.rmtree(entry.path)
                    logger.debug(f"Deleted directory: {entry.name}")
                else:
                    os.remove(entry.path)
                    logger.debug(f"Deleted file: {entry.name}")
            except OSError as e:
                logger.warning(f"Failed to delete {entry.name}: {e}")

        logger.info("Output directory cleanup completed")

    except OSError as e:
        logger.error(f"Error during output directory cleanup: {e}")


class CleanupScheduler:
    """Runs output cleanup on a fixed interval in the background."""

    def __init__(
        self,
        install_path: Path,
        interval_seconds: float,
        clean: Callable[[Path], None] = clean_output_directory,
    ):
        self.install_path = install_path
        self.interval_seconds = interval_seconds
        self._clean = clean
        self._running = False
        self._task = None
        self.sweeps = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the cleanup loop. The first sweep runs after one interval."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop())
        logger.info(f"Cleanup scheduler started (every {self.interval_seconds:g}s)")

    async def stop(self):
        """Stop the cleanup loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cleanup scheduler stopped")

    async def _cleanup_loop(self):
        """Main cleanup loop."""
        loop = asyncio.get_running_loop()
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                # Sweep in a worker thread, off the event loop
                await loop.run_in_executor(None, self._clean, self.install_path)
            except Exception as e:
                self.failures += 1
                logger.error(f"Error in cleanup loop: {e}")
                continue
            self.sweeps += 1


@asynccontextmanager
async def cleanup_schedule(
    install_path: Path,
    interval_minutes: int,
    clean: Callable[[Path], None] = clean_output_directory,
) -> AsyncIterator[Optional[CleanupScheduler]]:
    """Run a cleanup scheduler for the duration of the block, or nothing if disabled."""
    if interval_minutes <= 0:
        logger.info(f"Cleanup timer disabled (interval set to {interval_minutes})")
        yield None
        return

    logger.info(f"Starting cleanup timer with interval of {interval_minutes} minutes")
    scheduler = CleanupScheduler(install_path, interval_minutes * 60, clean)
    await scheduler.start()
    try:
        yield scheduler
    finally:
        await scheduler.stop()
