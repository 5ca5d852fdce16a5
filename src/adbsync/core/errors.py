"""
AdbSync error taxonomy.

Every failure the engine raises derives from AdbSyncError so callers can
separate engine errors from programming errors.
"""

from __future__ import annotations


class AdbSyncError(Exception):
    """Base class for AdbSync errors."""


class TransportNotFound(AdbSyncError):
    """The adb tool could not be located or started."""

    def __init__(self, message: str = "adb executable not found") -> None:
        super().__init__(message)


class CommandFailed(AdbSyncError):
    """A remote command exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
        command: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
        self.command = command or []


class CommandCancelled(AdbSyncError):
    """A remote command was terminated by cancellation or timeout."""

    def __init__(self, message: str = "Command cancelled", timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class DeviceDisconnected(AdbSyncError):
    """The source device went away while a task depended on it."""


class DeviceNotFound(DeviceDisconnected):
    """adb reports the requested serial as missing or offline."""


class FilesystemError(AdbSyncError):
    """Local filesystem I/O failed."""


class NoFilesToSync(AdbSyncError):
    """A sync selection expanded to zero files."""

    def __init__(self, message: str = "Selection contains no files to sync") -> None:
        super().__init__(message)


class TaskNotFound(AdbSyncError):
    """No task exists with the requested identity."""


def is_retryable(error: BaseException) -> bool:
    """Default retry classification for transfer errors."""
    if isinstance(error, (CommandCancelled, DeviceDisconnected, TransportNotFound)):
        return False
    return True
