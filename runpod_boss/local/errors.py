"""
Error classes for runpod_boss.

Provisioning and linking errors abort startup before any service runs.
Launch errors are isolated to the service that failed. A shutdown timeout
is reported for each service that had to be force-killed.
"""

from pathlib import Path
from typing import Optional, Union


class RunpodBossError(Exception):
    """Base exception for runpod_boss."""
    pass


class ConfigurationError(RunpodBossError):
    """Exception raised for configuration validation errors."""
    pass


class ProvisioningError(RunpodBossError):
    """A provisioning step's action failed. Re-running provisioning retries it."""

    def __init__(self, step: str, message: str, returncode: Optional[int] = None) -> None:
        self.step = step
        self.message = message
        self.returncode = returncode
        super().__init__(str(self))

    def __str__(self) -> str:
        status = f" (exit status {self.returncode})" if self.returncode is not None else ""
        return f"Provisioning step '{self.step}' failed{status}: {self.message}"


class LinkError(RunpodBossError):
    """A copy, remove or symlink operation failed while reconciling a shared mount."""

    def __init__(self, path: Union[str, Path], message: str) -> None:
        self.path = Path(path)
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Failed to link '{self.path}': {self.message}"


class LaunchError(RunpodBossError):
    """A managed service could not be started."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Service '{self.service}' failed to launch: {self.message}"


class ShutdownTimeout(RunpodBossError):
    """A service did not exit within the grace period after being signalled."""

    def __init__(self, service: str, timeout: float) -> None:
        self.service = service
        self.timeout = timeout
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Service '{self.service}' did not exit within {self.timeout}s of SIGTERM"
