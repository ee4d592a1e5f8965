"""Fatal session outcomes raised by the MinerU host."""


class HostError(Exception):
    """Base class for errors that end a supervisory session."""


class SetupError(HostError):
    """A bootstrap step exited with a non-zero code."""

    def __init__(self, step: str, exit_code: int):
        self.step = step
        self.exit_code = exit_code
        super().__init__(f"Setup step '{step}' failed with exit code {exit_code}")


class LaunchError(HostError):
    """An executable could not be started."""

    def __init__(self, executable: str, reason: str):
        self.executable = executable
        super().__init__(f"Failed to start {executable}: {reason}")


class UnexpectedExitError(HostError):
    """The API process exited while no shutdown was requested."""

    def __init__(self, exit_code: int):
        self.exit_code = exit_code
        super().__init__(f"MinerU API process exited unexpectedly with code {exit_code}")
