"""
AdbSync task lifecycle primitives.

Provides task status, progress snapshots and the cancellation context that
is threaded through every remote command and transfer.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum, auto

from adbsync.core.errors import CommandCancelled
from adbsync.core.logging import get_logger

logger = get_logger(__name__)


class JobStatus(Enum):
    """Status of a sync task."""

    PENDING = auto()
    RUNNING = auto()
    PAUSED = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


@dataclass(frozen=True)
class JobProgress:
    """Progress information for a sync task."""

    processed: int = 0
    total: int = 0
    failed: int = 0
    bytes_transferred: int = 0
    bytes_total: int = 0
    speed_bytes_per_sec: float = 0.0
    eta_seconds: float | None = None
    current_file: str | None = None

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return min(100.0, (self.processed / self.total) * 100)


class JobContext:
    """Cancellation, pause and progress state shared with a running task.

    ``cancel`` stops new work from being scheduled and lets in-flight work
    finish. ``abort`` additionally sets the abort event that running commands
    watch, so in-flight work is terminated.
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._aborted = threading.Event()
        self._paused = threading.Event()
        self._progress = JobProgress()
        self._progress_callbacks: list[Callable[[JobProgress], None]] = []
        self._lock = threading.Lock()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def is_aborted(self) -> bool:
        return self._aborted.is_set()

    @property
    def is_paused(self) -> bool:
        return self._paused.is_set()

    @property
    def abort_event(self) -> threading.Event:
        """Event watched by remote commands and retry sleeps."""
        return self._aborted

    def cancel(self) -> None:
        """Request cancellation; in-flight work is allowed to finish."""
        self._cancelled.set()

    def abort(self) -> None:
        """Cancel and terminate in-flight work immediately."""
        self._cancelled.set()
        self._aborted.set()

    def pause(self) -> None:
        self._paused.set()

    def resume(self) -> None:
        self._paused.clear()

    def check_cancelled(self) -> None:
        """Raise if the task was aborted."""
        if self._aborted.is_set():
            raise CommandCancelled("Task was cancelled")

    def update_progress(self, **changes: object) -> JobProgress:
        """Replace progress fields and notify callbacks with the new snapshot."""
        with self._lock:
            self._progress = replace(self._progress, **changes)
            snapshot = self._progress

        for callback in list(self._progress_callbacks):
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning("Progress callback error", error=str(e))
        return snapshot

    def add_progress_callback(self, callback: Callable[[JobProgress], None]) -> None:
        """Add a callback to be notified of progress updates."""
        self._progress_callbacks.append(callback)

    def get_progress(self) -> JobProgress:
        """Get current progress snapshot."""
        with self._lock:
            return self._progress
