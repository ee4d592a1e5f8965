"""Command-line options for the MinerU host."""

import argparse
from pathlib import Path

from .config import LaunchConfig, config


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser; defaults come from the environment config."""
    parser = argparse.ArgumentParser(
        prog="mineru-host",
        description="Install, run and supervise the MinerU API server.",
        epilog=(
            "Example:\n"
            "  mineru-host --host 127.0.0.1 --port 9000 --install-path /opt/mineru\n"
            "  mineru-host --cleanup-interval 0  # Disable cleanup"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--host",
        default=config.host,
        help=f"Host to bind MinerU API (default: {config.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=config.port,
        help=f"Port to bind MinerU API (default: {config.port})",
    )
    parser.add_argument(
        "--install-path",
        type=Path,
        default=config.install_path,
        help=f"Path to install MinerU (default: {config.install_path})",
    )
    parser.add_argument(
        "--cleanup-interval",
        type=int,
        default=config.cleanup_interval,
        metavar="MINUTES",
        help=f"Cleanup interval in minutes, 0 or negative to disable (default: {config.cleanup_interval})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    return parser


def parse_args(argv: list[str] = None) -> tuple[LaunchConfig, str]:
    """Parse arguments into a launch configuration and a log level."""
    args = build_parser().parse_args(argv)
    launch = LaunchConfig(
        host=args.host,
        port=args.port,
        install_path=args.install_path.expanduser().resolve(),
        cleanup_interval_minutes=args.cleanup_interval,
    )
    return launch, args.log_level
