"""
AdbSync Session Management.

Wires the remote, diff, sync and persistence services together and is the
main entry point for every AdbSync operation.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Collection, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from adbsync.core.cache import DeviceCacheStore
from adbsync.core.config import AdbSyncConfig, load_config
from adbsync.core.errors import DeviceNotFound
from adbsync.core.events import Event, EventBus, EventType
from adbsync.core.history import SyncHistoryStore
from adbsync.core.job import JobStatus
from adbsync.core.logging import OperationLogger, get_logger, setup_logging
from adbsync.core.models import (
    ConflictPolicy,
    DeviceInfo,
    DiffResult,
    DiffType,
    FileCategory,
    FileEntry,
    FileTreeNode,
)
from adbsync.remote.adb import AdbBridge
from adbsync.remote.listing import RemoteListingParser
from adbsync.remote.monitor import DeviceMonitor
from adbsync.sync.diff import DiffEngine
from adbsync.sync.filters import FilterRuleSet
from adbsync.sync.manager import ConflictResolver, SyncManager
from adbsync.sync.retry import RetryManager
from adbsync.sync.scanner import LocalTreeScanner
from adbsync.sync.task import SyncSummary, SyncTask

logger = get_logger(__name__)


def is_hidden(relative_path: str) -> bool:
    return any(part.startswith(".") for part in relative_path.split("/") if part)


class Session:
    """
    Manages an AdbSync session: configuration, services and current diff.

    Services are constructed once here and shared by reference.
    """

    def __init__(
        self,
        config: AdbSyncConfig | None = None,
        bridge: AdbBridge | None = None,
        conflict_resolver: ConflictResolver | None = None,
        config_path: Path | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.config = config or load_config(config_path)
        self.config_path = config_path

        setup_logging(self.config.logging)

        self.bus = EventBus()
        self.bridge = bridge or AdbBridge(self.config.remote)
        self.listing = RemoteListingParser(self.bridge)
        self.scanner = LocalTreeScanner()
        self.diff_engine = DiffEngine(hash_authoritative=self.config.sync.hash_authoritative)
        self.filters = FilterRuleSet.from_config(self.config.filters)
        self.retry = RetryManager(self.config.retry)
        self.sync = SyncManager(
            self.bridge,
            self.listing,
            self.retry,
            config=self.config.sync,
            bus=self.bus,
            conflict_resolver=conflict_resolver,
            filters=self.filters,
        )
        self.history = SyncHistoryStore(self.config.history_file, self.config.history_limit)
        self.cache = DeviceCacheStore(self.config.cache_file)
        self.monitor = DeviceMonitor(
            self.bridge, self.bus, self.config.remote.device_poll_interval_seconds
        )

        self._diff = DiffResult.empty()
        self._diff_lock = threading.Lock()
        # guards monitor start and config writes from orchestrator threads
        self._lock = threading.Lock()

        self.bus.subscribe(EventType.DEVICE_DISCONNECTED, self._on_device_disconnected)
        self.sync.add_completion_callback(self._on_sync_finished)

        logger.info("Session started", session_id=self.id)

    # ---------------------------------------------------------------- devices

    def devices(self) -> list[DeviceInfo]:
        return self.bridge.list_devices()

    def get_device(self, serial: str | None = None) -> DeviceInfo:
        """Find an attached device; without a serial there must be exactly one."""
        devices = self.devices()
        if serial is None:
            if len(devices) == 1:
                return devices[0]
            if not devices:
                raise DeviceNotFound("No devices attached")
            raise DeviceNotFound("Several devices attached; choose one by serial")
        for device in devices:
            if device.serial == serial:
                return device
        raise DeviceNotFound(f"Device {serial} not attached")

    def _on_device_disconnected(self, event: Event) -> None:
        device: DeviceInfo = event.payload
        aborted = self.sync.abort_device(device.serial, f"Device {device.serial} disconnected")
        self.listing.clear_cache(device.serial)
        if aborted:
            logger.warning("Aborted tasks for disconnected device", serial=device.serial, tasks=aborted)

    # ---------------------------------------------------------------- listing

    def list_remote(
        self,
        serial: str,
        path: str | None = None,
        recursive: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> list[FileEntry]:
        entries = self.listing.list(
            serial,
            path or self.config.remote.scan_root,
            cancel_event=cancel_event,
            recursive=recursive,
        )
        if not self.config.sync.show_hidden_files:
            entries = [entry for entry in entries if not is_hidden(entry.relative_path)]
        return entries

    def scan_local(self, path: Path | None = None, calculate_hash: bool | None = None) -> list[FileEntry]:
        if calculate_hash is None:
            calculate_hash = self.config.sync.enable_hash_comparison
        return self.scanner.scan(
            Path(path or self.config.sync.default_target_path),
            calculate_hash=calculate_hash,
            include_hidden=self.config.sync.show_hidden_files,
        )

    def directory_sizes(self, serial: str, paths: list[str]) -> dict[str, int]:
        return self.listing.directory_sizes(serial, paths)

    def storage_info(self, serial: str, path: str | None = None) -> tuple[int, int]:
        """Total and available bytes on the device filesystem holding ``path``."""
        return self.bridge.storage_info(serial, path or self.config.remote.scan_root)

    def stat_remote(self, serial: str, path: str) -> tuple[int, datetime] | None:
        return self.bridge.stat(serial, path)

    def adb_version(self) -> str:
        return self.bridge.version()

    # ---------------------------------------------------------------- diff

    def compare(
        self,
        serial: str,
        remote_path: str | None = None,
        local_path: Path | None = None,
        use_hash: bool | None = None,
    ) -> DiffResult:
        """Compare a device tree with a local tree and keep the result as current."""
        remote_path = remote_path or self.config.remote.scan_root
        local_path = Path(local_path or self.config.sync.default_target_path)
        if use_hash is None:
            use_hash = self.config.sync.enable_hash_comparison

        with OperationLogger("comparison", logger, serial=serial, remote=remote_path) as op:
            remote = [e for e in self.list_remote(serial, remote_path) if not e.is_directory]
            local = self.scan_local(local_path, calculate_hash=use_hash)

            remote = self.filters.apply(remote)
            local = self.filters.apply(local)

            result = self.diff_engine.compare(remote, local, use_hash=use_hash)
            op.update(summary=result.summary)

        with self._diff_lock:
            self._diff = result
        return result

    @property
    def current_diff(self) -> DiffResult:
        with self._diff_lock:
            return self._diff

    def filtered_diff(
        self,
        search_text: str = "",
        file_types: Collection[FileCategory] | None = None,
        diff_types: Collection[DiffType] | None = None,
    ) -> DiffResult:
        return self.diff_engine.filter(self.current_diff, search_text, file_types, diff_types)

    def tree(self, entries: Iterable[FileEntry] | None = None) -> FileTreeNode:
        """Tree projection of ``entries``, or of everything in the current diff."""
        if entries is None:
            diff = self.current_diff
            entries = diff.new + diff.modified + diff.deleted + diff.unchanged
        return self.diff_engine.build_tree(entries)

    # ---------------------------------------------------------------- sync

    def start_sync(
        self,
        device: DeviceInfo,
        selection: Iterable[FileEntry] | None = None,
        source_root: str | None = None,
        target_root: Path | None = None,
        policy: ConflictPolicy | None = None,
    ) -> SyncTask:
        """Start syncing ``selection`` (default: every new or modified file).

        Starts the device monitor so a disconnect aborts the task.
        """
        if selection is None:
            selection = self.current_diff.syncable
        with self._lock:
            self.monitor.start()
        return self.sync.start_sync(
            selection,
            device,
            source_root or self.config.remote.scan_root,
            Path(target_root or self.config.sync.default_target_path),
            policy=policy,
        )

    def run_sync(
        self,
        device: DeviceInfo,
        selection: Iterable[FileEntry] | None = None,
        source_root: str | None = None,
        target_root: Path | None = None,
        policy: ConflictPolicy | None = None,
    ) -> SyncTask:
        task = self.start_sync(device, selection, source_root, target_root, policy)
        self.sync.wait(task.id)
        return task

    def _on_sync_finished(self, summary: SyncSummary) -> None:
        self.history.add(summary)

        if summary.status != JobStatus.COMPLETED:
            return

        task = self.sync.get_task(summary.task_id)
        if task is not None and task.transferred:
            self.cache.update(summary.device_serial, task.transferred)

        with self._lock:
            self.config.update_last_sync_path(summary.device_serial, summary.target_root)
            if self.config_path is not None:
                self.config.save(self.config_path)

    # ---------------------------------------------------------------- lifecycle

    def close(self, timeout: float | None = 30.0) -> None:
        """Stop the monitor, cancel active tasks and wait for them to settle."""
        self.monitor.stop()
        cancelled = self.sync.cancel_all()
        if not self.sync.join(timeout):
            logger.warning("Sync tasks still running after close", session_id=self.id)
        logger.info("Session closed", session_id=self.id, cancelled_tasks=cancelled)

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
