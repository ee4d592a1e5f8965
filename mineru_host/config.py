"""
Configuration for the MinerU host.

Loads settings from environment variables with sensible defaults.
Host state (logs) is stored in ~/.mineru-host/ unless MINERU_HOST_HOME
points elsewhere.
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# On-disk layout under the install path
VENV_DIR_NAME = "mineru-venv"
SETUP_MARKER_NAME = ".mineru-setup-complete"
OUTPUT_DIR_NAME = "output"
API_EXECUTABLE_NAME = "mineru-api"


@dataclass
class Config:
    """MinerU host configuration."""

    # Paths
    data_dir: Path = Path(os.environ.get("MINERU_HOST_HOME", str(Path.home() / ".mineru-host")))
    install_path: Path = None
    host_log: Path = None

    # Logging
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

    # MinerU API server
    host: str = os.environ.get("MINERU_HOST", "0.0.0.0")
    port: int = int(os.environ.get("MINERU_PORT", "8200"))

    # Output cleanup, in minutes (0 or negative disables)
    cleanup_interval: int = int(os.environ.get("MINERU_CLEANUP_INTERVAL", "5"))

    # Seconds to wait for the API process tree after a termination request
    shutdown_timeout: float = float(os.environ.get("MINERU_SHUTDOWN_TIMEOUT", "5"))

    # Bootstrap
    python_executable: str = os.environ.get("MINERU_PYTHON", sys.executable)
    package_spec: str = os.environ.get("MINERU_PACKAGE", "mineru[core]")

    def __post_init__(self):
        """Initialize derived paths."""
        install_path = os.environ.get("MINERU_INSTALL_PATH", "")
        self.install_path = Path(install_path) if install_path else self.data_dir
        self.host_log = self.data_dir / "mineru-host.log"


@dataclass(frozen=True)
class LaunchConfig:
    """Settings for one supervisory session. Read-only once built."""

    host: str
    port: int
    install_path: Path
    cleanup_interval_minutes: int

    @property
    def api_arguments(self) -> list[str]:
        """Command-line arguments passed to mineru-api."""
        return ["--host", self.host, "--port", str(self.port)]


def venv_dir(install_path: Path) -> Path:
    """Directory of the isolated virtual environment."""
    return Path(install_path) / VENV_DIR_NAME


def setup_marker_path(install_path: Path) -> Path:
    """Marker file whose presence means setup finished."""
    return Path(install_path) / SETUP_MARKER_NAME


def output_dir(install_path: Path) -> Path:
    """Directory the API writes results into; purged by the cleaner."""
    return Path(install_path) / OUTPUT_DIR_NAME


def venv_executable(install_path: Path, name: str) -> Path:
    """Get the platform-specific path of an executable inside the venv."""
    if sys.platform == "win32":
        return venv_dir(install_path) / "Scripts" / f"{name}.exe"
    return venv_dir(install_path) / "bin" / name


config = Config()
