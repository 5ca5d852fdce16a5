"""
AdbSync sync tasks.

A SyncTask is one run over a fixed, flattened file list. Its mutable state is
written only by the orchestrator thread that runs it; everyone else reads.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from adbsync.core.job import JobContext, JobProgress, JobStatus
from adbsync.core.models import ConflictPolicy, DeviceInfo, FileEntry


@dataclass(frozen=True)
class ResumeCheckpoint:
    """Where a paused task continues: the first file not yet attempted."""

    next_index: int
    bytes_transferred: int


class TransferRateMeter:
    """Trailing-window transfer speed, resampled at most once per interval."""

    def __init__(
        self,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = interval
        self._clock = clock
        self._sample_time: float | None = None
        self._sample_bytes = 0
        self.speed = 0.0

    def start(self, bytes_transferred: int = 0) -> None:
        self._sample_time = self._clock()
        self._sample_bytes = bytes_transferred
        self.speed = 0.0

    def update(self, bytes_transferred: int) -> float:
        now = self._clock()
        if self._sample_time is None:
            self._sample_time = now
            self._sample_bytes = bytes_transferred
            return self.speed

        elapsed = now - self._sample_time
        if elapsed >= self.interval:
            self.speed = max(0.0, (bytes_transferred - self._sample_bytes) / elapsed)
            self._sample_time = now
            self._sample_bytes = bytes_transferred
        return self.speed

    def eta(self, remaining_bytes: int) -> float | None:
        if self.speed <= 0:
            return None
        return max(0.0, remaining_bytes / self.speed)


@dataclass(frozen=True)
class SyncSummary:
    """Terminal record of a finished task, handed to the history sink."""

    task_id: str
    device_serial: str
    device_name: str
    source_root: str
    target_root: str
    status: JobStatus
    file_count: int
    processed: int
    failed: int
    skipped: int
    bytes_transferred: int
    started_at: datetime
    ended_at: datetime
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.COMPLETED and self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "device_serial": self.device_serial,
            "device_name": self.device_name,
            "source_root": self.source_root,
            "target_root": self.target_root,
            "status": self.status.name,
            "file_count": self.file_count,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "bytes_transferred": self.bytes_transferred,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSummary:
        return cls(
            task_id=data["task_id"],
            device_serial=data["device_serial"],
            device_name=data.get("device_name", ""),
            source_root=data.get("source_root", ""),
            target_root=data.get("target_root", ""),
            status=JobStatus[data["status"]],
            file_count=int(data.get("file_count", 0)),
            processed=int(data.get("processed", 0)),
            failed=int(data.get("failed", 0)),
            skipped=int(data.get("skipped", 0)),
            bytes_transferred=int(data.get("bytes_transferred", 0)),
            started_at=datetime.fromisoformat(data["started_at"]),
            ended_at=datetime.fromisoformat(data["ended_at"]),
            error=data.get("error"),
        )


@dataclass(eq=False)
class SyncTask:
    """One sync run."""

    files: tuple[FileEntry, ...]
    device: DeviceInfo
    source_root: str
    target_root: Path
    policy: ConflictPolicy
    max_concurrent: int = 3
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    context: JobContext = field(default_factory=JobContext)
    status: JobStatus = JobStatus.PENDING
    last_error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    checkpoint: ResumeCheckpoint | None = None
    # overwrite-all / skip-all answer to an ask-each-time prompt
    cached_decision: ConflictPolicy | None = None
    skipped: int = 0
    transferred: list[FileEntry] = field(default_factory=list)
    abort_reason: str | None = None
    _settled: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    # bumped for every orchestrator run; a paused run only settles if still current
    _run: int = field(default=0, init=False, repr=False)

    @property
    def progress(self) -> JobProgress:
        return self.context.get_progress()

    @property
    def total_bytes(self) -> int:
        return sum(entry.size for entry in self.files)

    @property
    def effective_policy(self) -> ConflictPolicy:
        return self.cached_decision or self.policy

    def summary(self) -> SyncSummary:
        progress = self.progress
        ended = self.ended_at or datetime.now()
        return SyncSummary(
            task_id=self.id,
            device_serial=self.device.serial,
            device_name=self.device.display_name,
            source_root=self.source_root,
            target_root=str(self.target_root),
            status=self.status,
            file_count=len(self.files),
            processed=progress.processed,
            failed=progress.failed,
            skipped=self.skipped,
            bytes_transferred=progress.bytes_transferred,
            started_at=self.started_at or self.created_at,
            ended_at=ended,
            error=self.last_error,
        )

    def to_dict(self) -> dict[str, Any]:
        progress = self.progress
        return {
            "id": self.id,
            "device": self.device.serial,
            "source_root": self.source_root,
            "target_root": str(self.target_root),
            "policy": self.policy.value,
            "status": self.status.name,
            "files": len(self.files),
            "processed": progress.processed,
            "failed": progress.failed,
            "skipped": self.skipped,
            "bytes_transferred": progress.bytes_transferred,
            "bytes_total": progress.bytes_total,
            "speed_bytes_per_sec": progress.speed_bytes_per_sec,
            "eta_seconds": progress.eta_seconds,
            "last_error": self.last_error,
        }
