"""
AdbSync diff engine.

Classifies two file collections into new, modified, deleted and unchanged
entries and projects collections into a browsable tree.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable

from adbsync.core.models import (
    DiffResult,
    DiffType,
    FileCategory,
    FileEntry,
    FileTreeNode,
)

# Filesystem clock slack between device and host
TIME_TOLERANCE_SECONDS = 2.0


class DiffEngine:
    """Compares a remote collection against a local one.

    Entries are matched by relative path. With ``use_hash`` and hashes on both
    sides, differing hashes always mean modified; when ``hash_authoritative``
    is set, equal hashes also mean unchanged regardless of size and time.
    """

    def __init__(
        self,
        hash_authoritative: bool = True,
        time_tolerance: float = TIME_TOLERANCE_SECONDS,
    ) -> None:
        self.hash_authoritative = hash_authoritative
        self.time_tolerance = time_tolerance

    def compare(
        self,
        remote: Iterable[FileEntry],
        local: Iterable[FileEntry],
        use_hash: bool = False,
    ) -> DiffResult:
        remote_map = {entry.relative_path: entry for entry in remote}
        local_map = {entry.relative_path: entry for entry in local}

        new: list[FileEntry] = []
        modified: list[FileEntry] = []
        deleted: list[FileEntry] = []
        unchanged: list[FileEntry] = []

        for path in sorted(remote_map.keys() | local_map.keys()):
            remote_entry = remote_map.get(path)
            local_entry = local_map.get(path)

            if remote_entry is None:
                deleted.append(local_entry)
            elif local_entry is None:
                new.append(remote_entry)
            elif self.is_modified(remote_entry, local_entry, use_hash):
                modified.append(remote_entry)
            else:
                unchanged.append(remote_entry)

        return DiffResult(
            new=tuple(new),
            modified=tuple(modified),
            deleted=tuple(deleted),
            unchanged=tuple(unchanged),
        )

    def is_modified(self, remote: FileEntry, local: FileEntry, use_hash: bool = False) -> bool:
        if use_hash and remote.content_hash and local.content_hash:
            if remote.content_hash != local.content_hash:
                return True
            if self.hash_authoritative:
                return False

        if remote.size != local.size:
            return True

        delta = abs((remote.modified_at - local.modified_at).total_seconds())
        return delta > self.time_tolerance

    def filter(
        self,
        result: DiffResult,
        search_text: str = "",
        file_types: Collection[FileCategory] | None = None,
        diff_types: Collection[DiffType] | None = None,
    ) -> DiffResult:
        """Narrow every collection of ``result``; empty criteria keep everything."""
        needle = search_text.strip().casefold()

        def keep(entry: FileEntry) -> bool:
            if needle and needle not in entry.relative_path.casefold():
                return False
            if file_types and entry.category not in file_types:
                return False
            return True

        def select(diff_type: DiffType) -> tuple[FileEntry, ...]:
            if diff_types and diff_type not in diff_types:
                return ()
            return tuple(entry for entry in result.by_type(diff_type) if keep(entry))

        return DiffResult(
            new=select(DiffType.NEW),
            modified=select(DiffType.MODIFIED),
            deleted=select(DiffType.DELETED),
            unchanged=select(DiffType.UNCHANGED),
        )

    @staticmethod
    def build_tree(entries: Iterable[FileEntry]) -> FileTreeNode:
        """Build a directory tree from relative paths."""
        root = FileTreeNode(name="/", path="/", is_directory=True)

        for entry in entries:
            parts = [part for part in entry.relative_path.split("/") if part]
            if not parts:
                continue

            node = root
            for depth, part in enumerate(parts):
                is_last = depth == len(parts) - 1
                child = node.children.get(part)
                if child is None:
                    child = FileTreeNode(
                        name=part,
                        path="/" + "/".join(parts[: depth + 1]),
                        is_directory=entry.is_directory if is_last else True,
                    )
                    node.children[part] = child
                if is_last:
                    child.entry = entry
                node = child

        return root
