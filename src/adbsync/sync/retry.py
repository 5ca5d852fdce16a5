"""
AdbSync retry management.

Bounded exponential backoff for fallible operations and a queue of items
that exhausted their attempts, kept for later reprocessing.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from adbsync.core.config import RetryConfig
from adbsync.core.errors import CommandCancelled
from adbsync.core.logging import get_logger
from adbsync.core.models import DeviceInfo, FileEntry

logger = get_logger(__name__)

T = TypeVar("T")


def always_retry(error: BaseException) -> bool:
    return True


@dataclass
class RetryItem:
    """A transfer that failed after all of its attempts."""

    file: FileEntry
    device: DeviceInfo
    target_root: Path
    last_error: str = ""
    retry_count: int = 0
    enqueued_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "file": self.file.relative_path,
            "device": self.device.serial,
            "target_root": str(self.target_root),
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "enqueued_at": self.enqueued_at.isoformat(),
        }


@dataclass(frozen=True)
class RetryPassResult:
    attempted: int = 0
    succeeded: int = 0
    dropped: int = 0
    remaining: int = 0


class RetryManager:
    """Runs operations with exponential backoff and owns the failure queue."""

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._queue: list[RetryItem] = []
        self._processing = False
        self._lock = threading.Lock()

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        max_attempts: int | None = None,
        initial_delay: float | None = None,
        multiplier: float | None = None,
        max_delay: float | None = None,
        should_retry: Callable[[BaseException], bool] = always_retry,
        operation_name: str = "operation",
        cancel_event: threading.Event | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or attempts run out.

        The delay before retry n+1 is ``min(delay(n) * multiplier, max_delay)``
        starting from ``initial_delay``. Cancellation is never retried. When
        attempts are exhausted the last error is re-raised as is.
        """
        attempts = max_attempts if max_attempts is not None else self.config.max_attempts
        delay = initial_delay if initial_delay is not None else self.config.initial_delay_seconds
        factor = multiplier if multiplier is not None else self.config.multiplier
        cap = max_delay if max_delay is not None else self.config.max_delay_seconds

        attempt = 1
        while True:
            try:
                return operation()
            except CommandCancelled:
                raise
            except Exception as e:
                if not should_retry(e):
                    logger.error(
                        "Operation failed, not retryable",
                        operation=operation_name,
                        error=str(e),
                    )
                    raise
                if attempt >= attempts:
                    logger.error(
                        "Operation failed after all attempts",
                        operation=operation_name,
                        attempts=attempts,
                        error=str(e),
                    )
                    raise

                logger.warning(
                    "Operation failed, retrying",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=attempts,
                    delay_seconds=delay,
                    error=str(e),
                )
                self._wait(delay, cancel_event)
                delay = min(delay * factor, cap)
                attempt += 1

    def _wait(self, delay: float, cancel_event: threading.Event | None) -> None:
        if self._sleep is not None:
            self._sleep(delay)
        elif cancel_event is not None:
            cancel_event.wait(delay)
        else:
            time.sleep(delay)

        if cancel_event is not None and cancel_event.is_set():
            raise CommandCancelled("Retry wait cancelled")

    # ------------------------------------------------------------ failure queue

    def add_to_retry_queue(
        self,
        file: FileEntry,
        device: DeviceInfo,
        target_root: Path,
        error: BaseException | str,
    ) -> RetryItem:
        item = RetryItem(
            file=file,
            device=device,
            target_root=Path(target_root),
            last_error=str(error),
        )
        with self._lock:
            self._queue.append(item)
        logger.info("Added to retry queue", path=file.relative_path, device=device.serial)
        return item

    def process_retry_queue(self, handler: Callable[[RetryItem], None]) -> RetryPassResult:
        """Attempt every queued item once with ``handler``.

        Returns immediately if another pass is in flight. Failed items have
        their retry count raised and are dropped once it reaches the attempt
        ceiling. Items queued while the pass runs are kept.
        """
        with self._lock:
            if self._processing or not self._queue:
                return RetryPassResult(remaining=len(self._queue))
            self._processing = True
            batch = list(self._queue)

        logger.info("Processing retry queue", items=len(batch))
        kept: list[RetryItem] = []
        succeeded = 0
        dropped = 0

        try:
            for item in batch:
                try:
                    handler(item)
                except Exception as e:
                    item.retry_count += 1
                    item.last_error = str(e)
                    if item.retry_count < self.config.max_attempts:
                        kept.append(item)
                    else:
                        dropped += 1
                        logger.error(
                            "Giving up on queued item",
                            path=item.file.relative_path,
                            retry_count=item.retry_count,
                            error=str(e),
                        )
                else:
                    succeeded += 1
                    logger.info("Queued item succeeded", path=item.file.relative_path)
        finally:
            with self._lock:
                batch_ids = {item.id for item in batch}
                # Unattempted items survive an interrupted pass
                attempted = succeeded + dropped + len(kept)
                untouched = batch[attempted:]
                added = [item for item in self._queue if item.id not in batch_ids]
                self._queue = kept + untouched + added
                self._processing = False
                remaining = len(self._queue)

        if remaining:
            logger.warning("Retry queue items remaining", remaining=remaining)

        return RetryPassResult(
            attempted=len(batch),
            succeeded=succeeded,
            dropped=dropped,
            remaining=remaining,
        )

    def clear_retry_queue(self) -> int:
        with self._lock:
            count = len(self._queue)
            self._queue.clear()
        logger.info("Cleared retry queue", items=count)
        return count

    def queue_status(self) -> tuple[int, bool]:
        """Return (queued item count, whether a pass is in flight)."""
        with self._lock:
            return len(self._queue), self._processing

    def failed_items(self) -> list[RetryItem]:
        with self._lock:
            return list(self._queue)
