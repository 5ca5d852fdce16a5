"""
AdbSync device cache.

Remembers the metadata of files last synced from each device.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from adbsync.core.logging import get_logger
from adbsync.core.models import FileEntry

logger = get_logger(__name__)


class CachedFile(BaseModel):
    absolute_path: str
    relative_path: str
    size: int
    modified_at: datetime
    content_hash: str | None = None

    @classmethod
    def from_entry(cls, entry: FileEntry) -> CachedFile:
        return cls(
            absolute_path=entry.absolute_path,
            relative_path=entry.relative_path,
            size=entry.size,
            modified_at=entry.modified_at,
            content_hash=entry.content_hash,
        )

    def to_entry(self) -> FileEntry:
        return FileEntry(
            absolute_path=self.absolute_path,
            relative_path=self.relative_path,
            size=self.size,
            modified_at=self.modified_at,
            content_hash=self.content_hash,
        )


class DeviceCache(BaseModel):
    serial: str
    last_sync_date: datetime | None = None
    files: dict[str, CachedFile] = Field(default_factory=dict)


class CacheDocument(BaseModel):
    devices: dict[str, DeviceCache] = Field(default_factory=dict)


class DeviceCacheStore:
    """Device-keyed file metadata, persisted as one JSON document."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._document = self._load()

    def _load(self) -> CacheDocument:
        if not self.path.exists():
            return CacheDocument()
        try:
            with open(self.path) as f:
                return CacheDocument.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Failed to load device cache", path=str(self.path), error=str(e))
            return CacheDocument()

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(self._document.model_dump(mode="json"), f, indent=2)

    def update(self, serial: str, entries: Iterable[FileEntry]) -> int:
        """Record synced entries for a device and stamp the sync date."""
        with self._lock:
            device = self._document.devices.setdefault(serial, DeviceCache(serial=serial))
            count = 0
            for entry in entries:
                device.files[entry.relative_path] = CachedFile.from_entry(entry)
                count += 1
            device.last_sync_date = datetime.now()
            self._save()
        return count

    def files(self, serial: str) -> list[FileEntry]:
        with self._lock:
            device = self._document.devices.get(serial)
            if device is None:
                return []
            return [cached.to_entry() for _, cached in sorted(device.files.items())]

    def last_sync_date(self, serial: str) -> datetime | None:
        with self._lock:
            device = self._document.devices.get(serial)
            return device.last_sync_date if device else None

    def clear(self, serial: str | None = None) -> None:
        with self._lock:
            if serial is None:
                self._document.devices.clear()
            else:
                self._document.devices.pop(serial, None)
            self._save()
