"""
AdbSync command execution.

Runs external commands under a timeout with cooperative cancellation. A
cancelled or timed-out process is terminated, then killed if it has not exited
within the grace period.
"""

from __future__ import annotations

import subprocess
import threading
import time

from adbsync.core.errors import CommandCancelled, CommandFailed, TransportNotFound
from adbsync.core.logging import get_logger

logger = get_logger(__name__)


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def __repr__(self) -> str:
        cmd = self.command if isinstance(self.command, str) else " ".join(self.command)
        return f"CommandResult(rc={self.returncode}, cmd='{cmd[:50]}...')"


class CommandRunner:
    """Executes commands with timeout and cancellation support."""

    def __init__(self, kill_grace_seconds: float = 0.2, poll_interval: float = 0.05) -> None:
        self.kill_grace_seconds = kill_grace_seconds
        self.poll_interval = poll_interval

    def run(
        self,
        command: list[str],
        timeout: float,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        """Run a command and return its result whatever the exit status.

        Raises TransportNotFound if the executable cannot be started and
        CommandCancelled if ``cancel_event`` is set or ``timeout`` elapses
        before the process exits.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise CommandCancelled(f"Cancelled before start: {command[0]}")

        logger.debug("Running command", command=command, timeout=timeout)
        start_time = time.monotonic()
        deadline = start_time + timeout

        try:
            proc = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except (FileNotFoundError, PermissionError) as e:
            raise TransportNotFound(f"Cannot execute {command[0]}: {e}") from e

        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    self._terminate(proc)
                    logger.info("Command cancelled", command=command)
                    raise CommandCancelled(f"Command cancelled: {' '.join(command)}")
                if time.monotonic() >= deadline:
                    self._terminate(proc)
                    logger.warning("Command timed out", command=command, timeout=timeout)
                    raise CommandCancelled(
                        f"Command timed out after {timeout}s: {' '.join(command)}",
                        timed_out=True,
                    )

        result = CommandResult(
            returncode=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            command=command,
            duration_seconds=time.monotonic() - start_time,
        )

        if not result.success:
            logger.debug(
                "Command failed",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr[:500],
            )

        return result

    def execute(
        self,
        command: list[str],
        timeout: float,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Run a command and return stdout, raising CommandFailed on non-zero exit."""
        result = self.run(command, timeout=timeout, cancel_event=cancel_event)
        if not result.success:
            message = (result.stderr or result.stdout).strip() or f"exit status {result.returncode}"
            raise CommandFailed(
                message,
                returncode=result.returncode,
                stderr=result.stderr,
                command=command,
            )
        return result.stdout

    def _terminate(self, proc: subprocess.Popen[str]) -> None:
        """Send SIGTERM, escalating to SIGKILL after the grace period."""
        proc.terminate()
        try:
            proc.wait(timeout=self.kill_grace_seconds)
        except subprocess.TimeoutExpired:
            logger.debug("Process ignored terminate, killing", pid=proc.pid)
            proc.kill()
            proc.wait()
        try:
            proc.communicate(timeout=1.0)
        except subprocess.TimeoutExpired:
            # A grandchild still holds the pipes open.
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
