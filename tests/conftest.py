"""
Pytest configuration and fixtures for AdbSync tests.
"""

import sys
import tempfile
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from adbsync.core.config import AdbSyncConfig, RetryConfig, SyncConfig  # noqa: E402
from adbsync.core.errors import CommandCancelled  # noqa: E402
from adbsync.core.models import ConflictPolicy, DeviceInfo, FileEntry  # noqa: E402
from adbsync.remote.listing import RemoteListingParser  # noqa: E402
from adbsync.sync.manager import SyncManager  # noqa: E402
from adbsync.sync.retry import RetryManager  # noqa: E402

BASE_TIME = datetime(2024, 1, 15, 10, 30)


def make_entry(
    relative_path: str,
    size: int = 10,
    modified_at: datetime = BASE_TIME,
    root: str = "/sdcard",
    is_directory: bool = False,
    content_hash: str | None = None,
) -> FileEntry:
    """Build a remote-style FileEntry under ``root``."""
    return FileEntry(
        absolute_path=root.rstrip("/") + relative_path,
        relative_path=relative_path,
        size=size,
        modified_at=modified_at,
        is_directory=is_directory,
        content_hash=content_hash,
    )


class FakeBridge:
    """In-memory stand-in for AdbBridge."""

    def __init__(self) -> None:
        self.devices = [DeviceInfo(serial="SERIAL1", model="Pixel 5", android_version="14")]
        self.listings: dict[str, str] = {}
        self.resolved: dict[str, str] = {}
        self.sizes: dict[str, int] = {}
        self.contents: dict[str, bytes] = {}
        self.failures: dict[str, list[BaseException]] = {}
        self.pull_calls: list[str] = []
        self.list_calls: list[tuple[str, bool]] = []
        self.on_pull: Callable[[str], None] | None = None
        self.pull_delay = 0.0
        self._lock = threading.Lock()

    def list_devices(self) -> list[DeviceInfo]:
        return list(self.devices)

    def resolve_path(
        self, serial: str, path: str, cancel_event: threading.Event | None = None
    ) -> str:
        return self.resolved.get(path, path)

    def list_directory(
        self,
        serial: str,
        path: str,
        recursive: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> str:
        self.list_calls.append((path, recursive))
        return self.listings.get(path, "")

    def du(self, serial: str, path: str, cancel_event: threading.Event | None = None) -> int | None:
        return self.sizes.get(path)

    def stat(
        self, serial: str, path: str, cancel_event: threading.Event | None = None
    ) -> tuple[int, datetime] | None:
        size = self.sizes.get(path)
        return (size, BASE_TIME) if size is not None else None

    def storage_info(self, serial: str, path: str = "/sdcard") -> tuple[int, int]:
        return 64 * 1024**3, 16 * 1024**3

    def version(self) -> str:
        return "1.0.41"

    def pull(
        self,
        serial: str,
        remote_path: str,
        local_path: str | Path,
        cancel_event: threading.Event | None = None,
    ) -> None:
        with self._lock:
            self.pull_calls.append(remote_path)
            pending = self.failures.get(remote_path)
            error = pending.pop(0) if pending else None

        if self.on_pull is not None:
            self.on_pull(remote_path)
        if error is not None:
            raise error

        if self.pull_delay:
            if cancel_event is not None:
                cancel_event.wait(self.pull_delay)
            else:
                time.sleep(self.pull_delay)
        if cancel_event is not None and cancel_event.is_set():
            raise CommandCancelled("pull cancelled")

        Path(local_path).write_bytes(self.contents.get(remote_path, b"remote data"))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> AdbSyncConfig:
    """Create a sample configuration for testing."""
    config = AdbSyncConfig(data_directory=temp_dir / "data")
    config.logging.log_directory = temp_dir / "logs"
    config.logging.file_enabled = False
    config.logging.console_enabled = False
    config.retry.initial_delay_seconds = 0
    config.sync.default_target_path = temp_dir / "target"
    config.ensure_directories()
    return config


@pytest.fixture
def device() -> DeviceInfo:
    return DeviceInfo(serial="SERIAL1", model="Pixel 5", android_version="14")


@pytest.fixture
def fake_bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def retry_manager() -> RetryManager:
    return RetryManager(RetryConfig(initial_delay_seconds=0), sleep=lambda seconds: None)


@pytest.fixture
def sync_manager(fake_bridge: FakeBridge, retry_manager: RetryManager) -> SyncManager:
    return SyncManager(
        fake_bridge,
        RemoteListingParser(fake_bridge),
        retry_manager,
        config=SyncConfig(conflict_policy=ConflictPolicy.OVERWRITE),
    )


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
