"""
AdbSync local tree scanner.

Enumerates the local side of a sync into FileEntry collections.
"""

from __future__ import annotations

import hashlib
import os
from datetime import datetime
from pathlib import Path

from adbsync.core.errors import FilesystemError
from adbsync.core.logging import OperationLogger, get_logger
from adbsync.core.models import FileEntry

logger = get_logger(__name__)

HASH_CHUNK_SIZE = 1024 * 1024


def hash_file(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """SHA-256 of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        while chunk := handle.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def stat_entry(path: Path, root: Path, calculate_hash: bool = False) -> FileEntry:
    """Build a FileEntry for a local file relative to ``root``."""
    stat = path.stat()
    relative = "/" + path.relative_to(root).as_posix()
    return FileEntry(
        absolute_path=str(path),
        relative_path=relative if relative != "/." else "/",
        size=stat.st_size,
        modified_at=datetime.fromtimestamp(stat.st_mtime),
        is_directory=path.is_dir(),
        content_hash=hash_file(path) if calculate_hash and path.is_file() else None,
    )


class LocalTreeScanner:
    """Walks a local directory tree."""

    def scan(
        self,
        root: Path,
        calculate_hash: bool = False,
        include_hidden: bool = False,
    ) -> list[FileEntry]:
        """List regular files under ``root``.

        A missing root yields no entries; a root that is not a directory
        raises FilesystemError. Unreadable files are logged and skipped.
        """
        root = Path(root).expanduser()
        if not root.exists():
            logger.info("Local root does not exist", root=str(root))
            return []
        if not root.is_dir():
            raise FilesystemError(f"Not a directory: {root}")

        entries: list[FileEntry] = []
        with OperationLogger("local scan", logger, root=str(root)) as op:
            for dirpath, dirnames, filenames in os.walk(root):
                if not include_hidden:
                    dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                dirnames.sort()

                for filename in sorted(filenames):
                    if not include_hidden and filename.startswith("."):
                        continue
                    path = Path(dirpath) / filename
                    if not path.is_file():
                        continue
                    try:
                        entries.append(stat_entry(path, root, calculate_hash))
                    except OSError as e:
                        logger.warning("Skipping unreadable file", path=str(path), error=str(e))

            op.update(files=len(entries))

        return entries
