"""
Python environment bootstrap for MinerU.

Checks whether an install path already holds a finished setup and, if not,
creates a virtual environment, installs uv and mineru into it, and writes a
timestamped completion marker. The sequence is not resumable: a failed step
leaves no marker, so the next session runs every step again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from .config import VENV_DIR_NAME, setup_marker_path, venv_dir, venv_executable
from .errors import SetupError
from .process import ProcessRunner

logger = logging.getLogger(__name__)


def is_setup_complete(install_path: Path) -> bool:
    """Check for both the venv directory and the setup marker file."""
    return venv_dir(install_path).is_dir() and setup_marker_path(install_path).is_file()


@dataclass
class SetupStep:
    """One command of the bootstrap sequence."""

    name: str
    description: str
    command: Callable[[Path], tuple[str, list[str]]]


class EnvironmentBootstrapper:
    """Prepares the MinerU virtual environment under an install path."""

    def __init__(self, runner: ProcessRunner, python_executable: str, package_spec: str = "mineru[core]"):
        self.runner = runner
        self.python_executable = python_executable
        self.package_spec = package_spec

    @property
    def steps(self) -> list[SetupStep]:
        return [
            SetupStep(
                "create-venv",
                "Creating virtual environment",
                lambda path: (self.python_executable, ["-m", "venv", VENV_DIR_NAME]),
            ),
            SetupStep(
                "upgrade-pip",
                "Upgrading pip",
                lambda path: (
                    str(venv_executable(path, "python")),
                    ["-m", "pip", "install", "--upgrade", "pip"],
                ),
            ),
            SetupStep(
                "install-uv",
                "Installing uv",
                lambda path: (str(venv_executable(path, "pip")), ["install", "uv"]),
            ),
            SetupStep(
                "install-mineru",
                "Installing MinerU",
                lambda path: (
                    str(venv_executable(path, "uv")),
                    [
                        "pip",
                        "install",
                        "-U",
                        self.package_spec,
                        "--python",
                        str(venv_executable(path, "python")),
                    ],
                ),
            ),
        ]

    def bootstrap(self, install_path: Path):
        """
        Run every setup step in order and write the completion marker.

        Raises SetupError at the first step that exits non-zero. LaunchError
        from a missing executable propagates unchanged.
        """
        install_path = Path(install_path)
        logger.info(f"Starting MinerU setup in {install_path}")
        install_path.mkdir(parents=True, exist_ok=True)

        for step in self.steps:
            logger.info(f"{step.description}...")
            executable, args = step.command(install_path)
            exit_code = self.runner.run(executable, args, cwd=install_path)
            if exit_code != 0:
                logger.error(f"Setup step {step.name} failed with exit code {exit_code}")
                raise SetupError(step.name, exit_code)

        marker = setup_marker_path(install_path)
        marker.write_text(datetime.now(timezone.utc).isoformat())
        logger.info(f"Created setup marker file at {marker}")
        logger.info("MinerU setup completed successfully")
