"""
Tests for adbsync.sync.scanner module.
"""

import hashlib
import os
from datetime import datetime
from pathlib import Path

import pytest

from adbsync.core.errors import FilesystemError
from adbsync.sync.scanner import LocalTreeScanner, hash_file


def write(path: Path, data: bytes = b"hello") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


class TestLocalTreeScanner:
    """Tests for LocalTreeScanner."""

    def test_scan_files(self, temp_dir: Path) -> None:
        write(temp_dir / "b.txt", b"bb")
        write(temp_dir / "DCIM" / "Camera" / "a.jpg", b"jpeg")

        entries = LocalTreeScanner().scan(temp_dir)

        assert [e.relative_path for e in entries] == ["/b.txt", "/DCIM/Camera/a.jpg"]
        assert all(not e.is_directory for e in entries)
        assert entries[0].size == 2
        assert entries[1].absolute_path == str(temp_dir / "DCIM" / "Camera" / "a.jpg")

    def test_modification_time(self, temp_dir: Path) -> None:
        path = write(temp_dir / "a.txt")
        mtime = datetime(2024, 1, 15, 10, 30).timestamp()
        os.utime(path, (mtime, mtime))

        entries = LocalTreeScanner().scan(temp_dir)
        assert entries[0].modified_at == datetime(2024, 1, 15, 10, 30)

    def test_hidden_files_skipped(self, temp_dir: Path) -> None:
        write(temp_dir / ".nomedia")
        write(temp_dir / ".thumbnails" / "t.jpg")
        write(temp_dir / "visible.txt")

        entries = LocalTreeScanner().scan(temp_dir)
        assert [e.relative_path for e in entries] == ["/visible.txt"]

    def test_hidden_files_included(self, temp_dir: Path) -> None:
        write(temp_dir / ".nomedia")
        write(temp_dir / ".thumbnails" / "t.jpg")

        entries = LocalTreeScanner().scan(temp_dir, include_hidden=True)
        assert {e.relative_path for e in entries} == {"/.nomedia", "/.thumbnails/t.jpg"}

    def test_hashes(self, temp_dir: Path) -> None:
        write(temp_dir / "a.txt", b"content")

        plain = LocalTreeScanner().scan(temp_dir)
        hashed = LocalTreeScanner().scan(temp_dir, calculate_hash=True)

        assert plain[0].content_hash is None
        assert hashed[0].content_hash == hashlib.sha256(b"content").hexdigest()

    def test_missing_root(self, temp_dir: Path) -> None:
        assert LocalTreeScanner().scan(temp_dir / "missing") == []

    def test_root_is_a_file(self, temp_dir: Path) -> None:
        path = write(temp_dir / "file.txt")
        with pytest.raises(FilesystemError):
            LocalTreeScanner().scan(path)


class TestHashFile:
    """Tests for hash_file."""

    def test_chunked_hash_matches(self, temp_dir: Path) -> None:
        data = os.urandom(10_000)
        path = write(temp_dir / "blob.bin", data)
        assert hash_file(path, chunk_size=1024) == hashlib.sha256(data).hexdigest()
