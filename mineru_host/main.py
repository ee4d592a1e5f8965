"""
MinerU host entry point.

Configures logging, wires the supervisor together, translates SIGINT and
SIGTERM into a graceful shutdown, and maps the session outcome to an exit
code: 0 when stopped on request, 1 for any fatal error.
"""

import asyncio
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler

from .cli import parse_args
from .config import LaunchConfig, config
from .errors import HostError
from .launcher import ProcessSupervisor

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO"):
    """Log to a rotating file under the data dir and to the console."""
    log_formatter = logging.Formatter(LOG_FORMAT)
    config.data_dir.mkdir(parents=True, exist_ok=True)

    # Rotating file handler (auto-compaction)
    file_handler = RotatingFileHandler(
        config.host_log,
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
    )
    file_handler.setFormatter(log_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[file_handler, console_handler],
        force=True,
    )


def install_signal_handlers(stop_event: asyncio.Event):
    """Set the stop event on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(stop_event.set))


async def serve(launch: LaunchConfig, supervisor: ProcessSupervisor = None):
    """Run one supervisory session until a signal arrives or the API dies."""
    supervisor = supervisor or ProcessSupervisor()
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)
    await supervisor.run(launch, stop_event)


def main(argv: list[str] = None) -> int:
    """Run the host and return the process exit code."""
    launch, log_level = parse_args(argv)
    configure_logging(log_level)

    try:
        asyncio.run(serve(launch))
    except HostError as e:
        logger.error(f"Application failed with error: {e}")
        return 1

    logger.info("Application stopped.")
    return 0


def run():
    """Console script entry point."""
    sys.exit(main())
