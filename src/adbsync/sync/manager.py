"""
AdbSync sync manager.

Runs device-to-host sync tasks: expands a selection into a flat transfer
list, keeps a bounded pool of transfers busy, applies the conflict policy and
supports pause, resume and cancel.
"""

from __future__ import annotations

import dataclasses
import os
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from adbsync.core.config import SyncConfig
from adbsync.core.errors import (
    CommandCancelled,
    DeviceDisconnected,
    FilesystemError,
    NoFilesToSync,
    TaskNotFound,
    TransportNotFound,
    is_retryable,
)
from adbsync.core.events import EventBus, EventType
from adbsync.core.job import JobStatus
from adbsync.core.logging import get_logger
from adbsync.core.models import (
    ConflictDecision,
    ConflictPolicy,
    DeviceInfo,
    FileEntry,
    relative_to_root,
)
from adbsync.sync.retry import RetryItem, RetryManager, RetryPassResult
from adbsync.sync.task import ResumeCheckpoint, SyncSummary, SyncTask, TransferRateMeter

if TYPE_CHECKING:
    from adbsync.remote.adb import AdbBridge
    from adbsync.remote.listing import RemoteListingParser
    from adbsync.sync.filters import FilterRuleSet

logger = get_logger(__name__)

ConflictResolver = Callable[[SyncTask, FileEntry, Path], ConflictDecision]

# Errors that end the whole task rather than a single file
SYSTEMIC_ERRORS = (DeviceDisconnected, TransportNotFound)

TERMINAL_EVENTS = {
    JobStatus.COMPLETED: EventType.SYNC_COMPLETED,
    JobStatus.FAILED: EventType.SYNC_FAILED,
    JobStatus.CANCELLED: EventType.SYNC_CANCELLED,
}


def unique_destination(path: Path) -> Path:
    """First free ``stem_N.suffix`` sibling of ``path``, counting from 1."""
    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1


def local_destination(target_root: Path, entry: FileEntry) -> Path:
    return Path(target_root) / entry.relative_path.lstrip("/")


class SyncManager:
    """Owns the active and completed task sets and runs their orchestrators.

    Each task gets one orchestrator thread that feeds a ThreadPoolExecutor of
    ``max_concurrent`` workers. Only the orchestrator mutates a running task;
    control methods set flags on the task's JobContext.
    """

    def __init__(
        self,
        bridge: AdbBridge,
        listing: RemoteListingParser,
        retry_manager: RetryManager,
        config: SyncConfig | None = None,
        bus: EventBus | None = None,
        conflict_resolver: ConflictResolver | None = None,
        filters: FilterRuleSet | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.bridge = bridge
        self.listing = listing
        self.retry_manager = retry_manager
        self.config = config or SyncConfig()
        self.bus = bus or EventBus()
        self.conflict_resolver = conflict_resolver
        self.filters = filters
        self._clock = clock
        self._active: dict[str, SyncTask] = {}
        self._completed: list[SyncTask] = []
        self._threads: dict[str, threading.Thread] = {}
        self._completion_callbacks: list[Callable[[SyncSummary], None]] = []
        self._lock = threading.Lock()

    # ---------------------------------------------------------------- queries

    @property
    def active_tasks(self) -> list[SyncTask]:
        with self._lock:
            return list(self._active.values())

    @property
    def completed_tasks(self) -> list[SyncTask]:
        with self._lock:
            return list(self._completed)

    def get_task(self, task_id: str) -> SyncTask | None:
        with self._lock:
            task = self._active.get(task_id)
            if task is not None:
                return task
            for task in self._completed:
                if task.id == task_id:
                    return task
        return None

    def _get_active(self, task_id: str) -> SyncTask:
        with self._lock:
            task = self._active.get(task_id)
        if task is None:
            raise TaskNotFound(f"No active task {task_id}")
        return task

    def add_completion_callback(self, callback: Callable[[SyncSummary], None]) -> None:
        """Register a callback receiving each task's terminal summary."""
        self._completion_callbacks.append(callback)

    # ---------------------------------------------------------------- start

    def expand_selection(
        self,
        selection: Iterable[FileEntry],
        device: DeviceInfo,
        source_root: str,
        cancel_event: threading.Event | None = None,
    ) -> list[FileEntry]:
        """Flatten files and directories into a list of files keyed against ``source_root``."""
        root = self.listing.resolve_root(device.serial, source_root, cancel_event=cancel_event)
        files: list[FileEntry] = []
        seen: set[str] = set()

        def add(entry: FileEntry) -> None:
            if entry.relative_path in seen:
                return
            if self.filters is not None and not self.filters.should_include(entry.relative_path):
                return
            seen.add(entry.relative_path)
            files.append(entry)

        for entry in selection:
            if entry.is_directory:
                children = self.listing.list(
                    device.serial,
                    entry.absolute_path,
                    cancel_event=cancel_event,
                    recursive=True,
                    root=source_root,
                )
                for child in children:
                    if not child.is_directory:
                        add(child)
                continue

            if root == "/" or entry.absolute_path.startswith(root + "/"):
                relative = relative_to_root(entry.absolute_path, root)
                if relative != entry.relative_path:
                    entry = dataclasses.replace(entry, relative_path=relative)
            add(entry)

        return files

    def start_sync(
        self,
        selection: Iterable[FileEntry],
        device: DeviceInfo,
        source_root: str,
        target_root: Path,
        policy: ConflictPolicy | None = None,
        max_concurrent: int | None = None,
    ) -> SyncTask:
        """Create a task for ``selection`` and start its orchestrator.

        Raises NoFilesToSync, without starting anything, when the selection
        expands to zero files.
        """
        files = self.expand_selection(selection, device, source_root)
        if not files:
            raise NoFilesToSync()

        task = SyncTask(
            files=tuple(files),
            device=device,
            source_root=source_root,
            target_root=Path(target_root).expanduser(),
            policy=policy or self.config.conflict_policy,
            max_concurrent=max_concurrent or self.config.max_concurrent_transfers,
        )
        task.context.update_progress(total=len(task.files), bytes_total=task.total_bytes)

        with self._lock:
            self._active[task.id] = task

        logger.info(
            "Sync task created",
            task_id=task.id,
            device=device.serial,
            files=len(task.files),
            bytes_total=task.total_bytes,
            policy=task.policy.value,
        )
        self.bus.publish(EventType.SYNC_STARTED, task)
        self._spawn(task, start_index=0)
        return task

    def run_sync(
        self,
        selection: Iterable[FileEntry],
        device: DeviceInfo,
        source_root: str,
        target_root: Path,
        policy: ConflictPolicy | None = None,
        max_concurrent: int | None = None,
        timeout: float | None = None,
    ) -> SyncTask:
        """Start a task and block until it settles (finishes or pauses)."""
        task = self.start_sync(selection, device, source_root, target_root, policy, max_concurrent)
        self.wait(task.id, timeout)
        return task

    def _spawn(self, task: SyncTask, start_index: int) -> None:
        with self._lock:
            task._run += 1
            task._settled.clear()
            thread = threading.Thread(
                target=self._run_task,
                args=(task, start_index, task._run),
                name=f"sync-{task.id[:8]}",
                daemon=True,
            )
            self._threads[task.id] = thread
            thread.start()

    def wait(self, task_id: str, timeout: float | None = None) -> bool:
        """Wait until a task finishes or pauses. Returns False on timeout."""
        task = self.get_task(task_id)
        if task is None:
            raise TaskNotFound(f"No task {task_id}")
        return task._settled.wait(timeout)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for every orchestrator thread to exit. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                threads = list(self._threads.values())
            if not threads:
                return True
            for thread in threads:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                thread.join(remaining)
                if thread.is_alive():
                    return False

    # ---------------------------------------------------------------- controls

    def pause(self, task_id: str) -> bool:
        task = self._get_active(task_id)
        if task.status not in (JobStatus.PENDING, JobStatus.RUNNING):
            return False
        task.context.pause()
        logger.info("Pause requested", task_id=task_id)
        return True

    def resume(self, task_id: str) -> bool:
        """Resume a paused task from its checkpoint."""
        task = self._get_active(task_id)
        with self._lock:
            if task.status in (JobStatus.PENDING, JobStatus.RUNNING) and task.context.is_paused:
                # Paused flag not yet acted on; the orchestrator keeps going
                task.context.resume()
                return True
            if task.status != JobStatus.PAUSED or task.checkpoint is None:
                return False
            task.context.resume()
            task.status = JobStatus.RUNNING
            start_index = task.checkpoint.next_index

        logger.info("Resuming task", task_id=task_id, from_index=start_index)
        self._spawn(task, start_index)
        return True

    def cancel(self, task_id: str) -> bool:
        """Stop scheduling new transfers; in-flight transfers finish."""
        task = self._get_active(task_id)
        if task.status.is_terminal:
            return False
        task.context.cancel()
        logger.info("Cancellation requested", task_id=task_id)
        with self._lock:
            idle = task.status == JobStatus.PAUSED
        if idle:
            self._finish(task, JobStatus.CANCELLED)
        return True

    def cancel_all(self) -> int:
        count = 0
        for task in self.active_tasks:
            try:
                if self.cancel(task.id):
                    count += 1
            except TaskNotFound:
                continue
        return count

    def abort_device(self, serial: str, reason: str = "Device disconnected") -> int:
        """Abort every active task sourced from ``serial``."""
        count = 0
        for task in self.active_tasks:
            if task.device.serial != serial or task.status.is_terminal:
                continue
            task.abort_reason = reason
            task.context.abort()
            count += 1
            logger.warning("Aborting task", task_id=task.id, device=serial, reason=reason)
            with self._lock:
                idle = task.status == JobStatus.PAUSED
            if idle:
                task.last_error = reason
                self._finish(task, JobStatus.FAILED)
        return count

    def clear_completed(self) -> int:
        with self._lock:
            count = len(self._completed)
            self._completed.clear()
        return count

    # ---------------------------------------------------------------- orchestrator

    def _run_task(self, task: SyncTask, start_index: int, run: int) -> None:
        try:
            self._orchestrate(task, start_index, run)
        finally:
            with self._lock:
                if self._threads.get(task.id) is threading.current_thread():
                    del self._threads[task.id]

    def _is_current_pause(self, task: SyncTask, run: int) -> bool:
        with self._lock:
            return task._run == run and task.status == JobStatus.PAUSED

    def _orchestrate(self, task: SyncTask, start_index: int, run: int) -> None:
        context = task.context
        task.status = JobStatus.RUNNING
        if task.started_at is None:
            task.started_at = datetime.now()

        meter = TransferRateMeter(clock=self._clock)
        meter.start(context.get_progress().bytes_transferred)
        next_index = start_index
        in_flight: dict[Future[int], FileEntry] = {}
        final_status: JobStatus | None = None

        logger.info(
            "Sync task running",
            task_id=task.id,
            from_index=start_index,
            total=len(task.files),
        )

        executor = ThreadPoolExecutor(
            max_workers=task.max_concurrent,
            thread_name_prefix=f"pull-{task.id[:8]}",
        )
        try:
            while True:
                while (
                    len(in_flight) < task.max_concurrent
                    and next_index < len(task.files)
                    and not context.is_cancelled
                    and not context.is_paused
                ):
                    entry = task.files[next_index]
                    next_index += 1
                    destination = self._prepare_destination(task, entry, meter)
                    if destination is not None:
                        future = executor.submit(self._transfer, task, entry, destination)
                        in_flight[future] = entry

                if in_flight:
                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        self._handle_result(task, in_flight.pop(future), future, meter)
                    continue

                with self._lock:
                    if context.is_cancelled or next_index >= len(task.files):
                        break
                    if context.is_paused:
                        progress = context.get_progress()
                        task.checkpoint = ResumeCheckpoint(
                            next_index=next_index,
                            bytes_transferred=progress.bytes_transferred,
                        )
                        task.status = JobStatus.PAUSED
                        break

            if task.status == JobStatus.PAUSED:
                logger.info(
                    "Sync task paused",
                    task_id=task.id,
                    next_index=next_index,
                    bytes_transferred=task.checkpoint.bytes_transferred,
                )
            elif context.is_aborted and task.abort_reason:
                task.last_error = task.abort_reason
                final_status = JobStatus.FAILED
            elif context.is_cancelled:
                final_status = JobStatus.CANCELLED
            else:
                final_status = JobStatus.COMPLETED

        except SYSTEMIC_ERRORS as e:
            logger.error("Sync task aborted", task_id=task.id, error=str(e))
            context.abort()
            executor.shutdown(wait=True, cancel_futures=True)
            task.last_error = str(e)
            final_status = JobStatus.FAILED

        except Exception as e:
            logger.exception("Sync task crashed", task_id=task.id, error=str(e))
            context.abort()
            executor.shutdown(wait=True, cancel_futures=True)
            task.last_error = str(e)
            final_status = JobStatus.FAILED

        finally:
            executor.shutdown(wait=True)

        if final_status is not None:
            self._finish(task, final_status)
            return

        # a resume or cancel may already have taken over this paused run
        if not self._is_current_pause(task, run):
            return
        self.bus.publish(EventType.SYNC_PAUSED, task)
        with self._lock:
            if task._run == run and task.status == JobStatus.PAUSED:
                task._settled.set()

    def _prepare_destination(
        self,
        task: SyncTask,
        entry: FileEntry,
        meter: TransferRateMeter,
    ) -> Path | None:
        """Apply the conflict policy. Returns None when the file is skipped."""
        destination = local_destination(task.target_root, entry)
        if not destination.exists():
            return destination

        policy = task.effective_policy
        if policy == ConflictPolicy.ASK_EACH_TIME:
            policy = self._ask(task, entry, destination)

        if policy == ConflictPolicy.SKIP:
            logger.debug("Skipping existing file", path=entry.relative_path)
            task.skipped += 1
            self._record(task, entry, meter)
            return None

        if policy == ConflictPolicy.RENAME:
            renamed = unique_destination(destination)
            try:
                destination.rename(renamed)
            except OSError as e:
                self._record_failure(task, entry, FilesystemError(str(e)), meter, queue=False)
                return None
            logger.info("Renamed existing file", path=str(destination), renamed_to=str(renamed))

        return destination

    def _ask(self, task: SyncTask, entry: FileEntry, destination: Path) -> ConflictPolicy:
        if self.conflict_resolver is None:
            logger.warning("No conflict resolver, skipping", path=entry.relative_path)
            return ConflictPolicy.SKIP

        try:
            decision = self.conflict_resolver(task, entry, destination)
        except Exception as e:
            logger.warning("Conflict resolver error", path=entry.relative_path, error=str(e))
            return ConflictPolicy.SKIP

        logger.debug("Conflict decision", path=entry.relative_path, decision=decision.name)
        if decision == ConflictDecision.OVERWRITE_ALL:
            task.cached_decision = ConflictPolicy.OVERWRITE
        elif decision == ConflictDecision.SKIP_ALL:
            task.cached_decision = ConflictPolicy.SKIP

        if decision in (ConflictDecision.OVERWRITE, ConflictDecision.OVERWRITE_ALL):
            return ConflictPolicy.OVERWRITE
        return ConflictPolicy.SKIP

    def _transfer(self, task: SyncTask, entry: FileEntry, destination: Path) -> int:
        """Pull one file with retries. Runs on a pool worker."""
        context = task.context

        def pull() -> int:
            context.check_cancelled()
            self.pull_file(task.device, entry, destination, context.abort_event)
            return entry.size

        return self.retry_manager.execute_with_retry(
            pull,
            should_retry=is_retryable,
            operation_name=f"pull {entry.relative_path}",
            cancel_event=context.abort_event,
        )

    def pull_file(
        self,
        device: DeviceInfo,
        entry: FileEntry,
        destination: Path,
        cancel_event: threading.Event | None = None,
    ) -> None:
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create {destination.parent}: {e}") from e

        self.bridge.pull(device.serial, entry.absolute_path, destination, cancel_event=cancel_event)

        if self.config.preserve_timestamps:
            mtime = entry.modified_at.timestamp()
            try:
                os.utime(destination, (mtime, mtime))
            except OSError as e:
                raise FilesystemError(f"Cannot set time on {destination}: {e}") from e

    def _handle_result(
        self,
        task: SyncTask,
        entry: FileEntry,
        future: Future[int],
        meter: TransferRateMeter,
    ) -> None:
        try:
            size = future.result()
        except CommandCancelled as e:
            if task.context.is_aborted:
                logger.debug("Transfer cancelled", path=entry.relative_path)
                return
            self._record_failure(task, entry, e, meter, queue=False)
        except SYSTEMIC_ERRORS:
            raise
        except Exception as e:
            self._record_failure(task, entry, e, meter)
        else:
            task.transferred.append(entry)
            logger.debug("Transfer completed", path=entry.relative_path, bytes=size)
            self._record(task, entry, meter, size)

    def _record(
        self,
        task: SyncTask,
        entry: FileEntry,
        meter: TransferRateMeter,
        size: int = 0,
        failed: bool = False,
    ) -> None:
        progress = task.context.get_progress()
        transferred = progress.bytes_transferred + size
        speed = meter.update(transferred)
        task.context.update_progress(
            processed=progress.processed + 1,
            failed=progress.failed + (1 if failed else 0),
            bytes_transferred=transferred,
            speed_bytes_per_sec=speed,
            eta_seconds=meter.eta(progress.bytes_total - transferred),
            current_file=entry.relative_path,
        )

    def _record_failure(
        self,
        task: SyncTask,
        entry: FileEntry,
        error: BaseException,
        meter: TransferRateMeter,
        queue: bool = True,
    ) -> None:
        logger.error("Transfer failed", task_id=task.id, path=entry.relative_path, error=str(error))
        task.last_error = f"{entry.relative_path}: {error}"
        if queue:
            self.retry_manager.add_to_retry_queue(entry, task.device, task.target_root, error)
        self._record(task, entry, meter, failed=True)

    def _finish(self, task: SyncTask, status: JobStatus) -> None:
        with self._lock:
            if self._active.pop(task.id, None) is None:
                return
            task.status = status
            task.ended_at = datetime.now()
            self._completed.append(task)

        summary = task.summary()
        logger.info(
            "Sync task finished",
            task_id=task.id,
            status=status.name,
            processed=summary.processed,
            failed=summary.failed,
            bytes=summary.bytes_transferred,
            duration_seconds=summary.duration_seconds,
        )

        for callback in list(self._completion_callbacks):
            try:
                callback(summary)
            except Exception as e:
                logger.warning("Completion callback error", error=str(e))

        self.bus.publish(TERMINAL_EVENTS[status], summary)
        task._settled.set()

    # ---------------------------------------------------------------- retry queue

    def process_retry_queue(self) -> RetryPassResult:
        """Re-attempt every file in the failure queue once."""

        def handler(item: RetryItem) -> None:
            destination = local_destination(item.target_root, item.file)
            self.retry_manager.execute_with_retry(
                lambda: self.pull_file(item.device, item.file, destination),
                should_retry=is_retryable,
                operation_name=f"retry {item.file.relative_path}",
            )

        return self.retry_manager.process_retry_queue(handler)
