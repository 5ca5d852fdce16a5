"""
AdbSync data models.

Defines the core data structures for devices, file entries and diff results.
"""

from __future__ import annotations

import posixpath
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any


class ConflictPolicy(str, Enum):
    """Rule applied when a transfer's destination already exists."""

    OVERWRITE = "overwrite"
    SKIP = "skip"
    RENAME = "rename"
    ASK_EACH_TIME = "ask_each_time"

    @property
    def description(self) -> str:
        return {
            ConflictPolicy.OVERWRITE: "Overwrite existing files",
            ConflictPolicy.SKIP: "Skip conflicting files",
            ConflictPolicy.RENAME: "Rename existing files out of the way",
            ConflictPolicy.ASK_EACH_TIME: "Ask for each conflict",
        }[self]


class ConflictDecision(Enum):
    """Answer to an ask-each-time conflict prompt."""

    OVERWRITE = auto()
    SKIP = auto()
    OVERWRITE_ALL = auto()
    SKIP_ALL = auto()


class DiffType(str, Enum):
    """Diff classification of a file."""

    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"


class FileCategory(str, Enum):
    """Extension-based file category."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    ARCHIVE = "archive"
    CODE = "code"
    OTHER = "other"

    @classmethod
    def from_path(cls, path: str) -> FileCategory:
        """Categorize a path by its extension."""
        ext = posixpath.splitext(path)[1].lower().lstrip(".")
        for category, extensions in _CATEGORY_EXTENSIONS.items():
            if ext in extensions:
                return category
        return cls.OTHER


_CATEGORY_EXTENSIONS: dict[FileCategory, frozenset[str]] = {
    FileCategory.IMAGE: frozenset({"jpg", "jpeg", "png", "gif", "bmp", "heic", "webp", "svg"}),
    FileCategory.VIDEO: frozenset({"mp4", "mov", "avi", "mkv", "flv", "wmv", "m4v"}),
    FileCategory.AUDIO: frozenset({"mp3", "m4a", "wav", "flac", "aac", "ogg", "wma"}),
    FileCategory.DOCUMENT: frozenset(
        {"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "rtf"}
    ),
    FileCategory.ARCHIVE: frozenset({"zip", "rar", "7z", "tar", "gz", "bz2"}),
    FileCategory.CODE: frozenset(
        {"swift", "java", "py", "js", "ts", "cpp", "c", "h", "html", "css", "xml", "json"}
    ),
}


class ConnectionType(Enum):
    """How a device is attached."""

    USB = auto()
    WIFI = auto()


@dataclass(frozen=True)
class DeviceInfo:
    """An attached Android device."""

    serial: str
    name: str = ""
    model: str = "Unknown"
    android_version: str = "Unknown"
    state: str = "device"
    connection_type: ConnectionType = ConnectionType.USB

    @property
    def display_name(self) -> str:
        if self.model and self.model != "Unknown":
            return self.model
        return self.name or self.serial

    def to_dict(self) -> dict[str, Any]:
        return {
            "serial": self.serial,
            "name": self.name,
            "model": self.model,
            "android_version": self.android_version,
            "state": self.state,
            "connection_type": self.connection_type.name,
        }


@dataclass(frozen=True)
class FileEntry:
    """A file or directory observed on one side of a sync."""

    absolute_path: str
    relative_path: str  # "/"-separated, rooted at the sync root
    size: int
    modified_at: datetime
    is_directory: bool = False
    content_hash: str | None = None
    identity: str = field(default_factory=lambda: str(uuid.uuid4()), compare=False)

    @property
    def name(self) -> str:
        return posixpath.basename(self.relative_path.rstrip("/")) or "/"

    @property
    def category(self) -> FileCategory:
        return FileCategory.from_path(self.relative_path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "absolute_path": self.absolute_path,
            "relative_path": self.relative_path,
            "size": self.size,
            "modified_at": self.modified_at.isoformat(),
            "is_directory": self.is_directory,
            "content_hash": self.content_hash,
        }


def relative_to_root(full_path: str, root: str) -> str:
    """Express ``full_path`` relative to ``root`` as a "/"-rooted key."""
    root = root.rstrip("/")
    if root and (full_path == root or full_path.startswith(root + "/")):
        rel = full_path[len(root):]
    else:
        rel = full_path
    if not rel:
        return "/"
    if not rel.startswith("/"):
        rel = "/" + rel
    return rel


@dataclass(frozen=True)
class DiffResult:
    """Four-way comparison of a remote and a local file collection."""

    new: tuple[FileEntry, ...] = ()
    modified: tuple[FileEntry, ...] = ()
    deleted: tuple[FileEntry, ...] = ()
    unchanged: tuple[FileEntry, ...] = ()

    @classmethod
    def empty(cls) -> DiffResult:
        return cls()

    @property
    def syncable(self) -> tuple[FileEntry, ...]:
        return self.new + self.modified

    @property
    def syncable_bytes(self) -> int:
        return sum(entry.size for entry in self.syncable)

    @property
    def total_count(self) -> int:
        return len(self.new) + len(self.modified) + len(self.deleted) + len(self.unchanged)

    @property
    def total_changes(self) -> int:
        return len(self.new) + len(self.modified) + len(self.deleted)

    @property
    def has_changes(self) -> bool:
        return self.total_changes > 0

    def by_type(self, diff_type: DiffType) -> tuple[FileEntry, ...]:
        return {
            DiffType.NEW: self.new,
            DiffType.MODIFIED: self.modified,
            DiffType.DELETED: self.deleted,
            DiffType.UNCHANGED: self.unchanged,
        }[diff_type]

    @property
    def summary(self) -> str:
        parts = [
            f"{len(entries)} {diff_type.value}"
            for diff_type in DiffType
            if (entries := self.by_type(diff_type))
        ]
        return ", ".join(parts) if parts else "no files"

    def to_dict(self) -> dict[str, Any]:
        return {
            diff_type.value: [entry.to_dict() for entry in self.by_type(diff_type)]
            for diff_type in DiffType
        } | {"summary": self.summary}


@dataclass
class FileTreeNode:
    """Node of the directory-tree projection of a file collection."""

    name: str
    path: str
    is_directory: bool
    entry: FileEntry | None = None
    children: dict[str, FileTreeNode] = field(default_factory=dict)

    @property
    def sorted_children(self) -> list[FileTreeNode]:
        return sorted(
            self.children.values(),
            key=lambda node: (not node.is_directory, node.name.casefold(), node.name),
        )

    def walk(self) -> list[FileTreeNode]:
        """Depth-first list of this node's descendants in display order."""
        nodes: list[FileTreeNode] = []
        for child in self.sorted_children:
            nodes.append(child)
            nodes.extend(child.walk())
        return nodes
