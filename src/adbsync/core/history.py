"""
AdbSync sync history.

Persists the terminal summary of every finished sync task as JSON.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from adbsync.core.job import JobStatus
from adbsync.core.logging import get_logger
from adbsync.sync.task import SyncSummary

logger = get_logger(__name__)


@dataclass(frozen=True)
class HistoryStatistics:
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    total_files: int = 0
    total_bytes: int = 0
    total_duration_seconds: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_syncs == 0:
            return 0.0
        return self.successful_syncs / self.total_syncs * 100


class SyncHistoryStore:
    """Newest-first list of sync summaries, capped at ``limit`` entries."""

    def __init__(self, path: Path, limit: int = 100) -> None:
        self.path = Path(path)
        self.limit = limit
        self._lock = threading.Lock()
        self._entries: list[SyncSummary] = self._load()

    def _load(self) -> list[SyncSummary]:
        if not self.path.exists():
            return []
        try:
            with open(self.path) as f:
                data = json.load(f)
            return [SyncSummary.from_dict(item) for item in data]
        except (OSError, ValueError, KeyError) as e:
            logger.warning("Failed to load sync history", path=str(self.path), error=str(e))
            return []

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump([entry.to_dict() for entry in self._entries], f, indent=2)

    def add(self, summary: SyncSummary) -> None:
        with self._lock:
            self._entries.insert(0, summary)
            del self._entries[self.limit :]
            self._save()
        logger.debug("Recorded sync history", task_id=summary.task_id, status=summary.status.name)

    def entries(self, device_serial: str | None = None, limit: int | None = None) -> list[SyncSummary]:
        with self._lock:
            result = list(self._entries)
        if device_serial is not None:
            result = [entry for entry in result if entry.device_serial == device_serial]
        if limit is not None:
            result = result[:limit]
        return result

    def statistics(self) -> HistoryStatistics:
        with self._lock:
            entries = list(self._entries)
        return HistoryStatistics(
            total_syncs=len(entries),
            successful_syncs=sum(1 for entry in entries if entry.succeeded),
            failed_syncs=sum(1 for entry in entries if entry.status == JobStatus.FAILED),
            total_files=sum(entry.processed - entry.failed - entry.skipped for entry in entries),
            total_bytes=sum(entry.bytes_transferred for entry in entries),
            total_duration_seconds=sum(entry.duration_seconds for entry in entries),
        )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._save()
        logger.info("Cleared sync history")

    def prune(self, days: int, now: datetime | None = None) -> int:
        """Drop entries that ended more than ``days`` days ago."""
        cutoff = (now or datetime.now()) - timedelta(days=days)
        with self._lock:
            before = len(self._entries)
            self._entries = [entry for entry in self._entries if entry.ended_at >= cutoff]
            removed = before - len(self._entries)
            if removed:
                self._save()
        return removed

    def export(self, destination: Path) -> Path:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            data = [entry.to_dict() for entry in self._entries]
        with open(destination, "w") as f:
            json.dump(data, f, indent=2)
        return destination
