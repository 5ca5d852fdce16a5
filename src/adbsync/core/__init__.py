"""
AdbSync Core - Service layer.

Contains configuration, data models, errors, events, task lifecycle and
session management.
"""

from adbsync.core.config import AdbSyncConfig
from adbsync.core.errors import AdbSyncError
from adbsync.core.job import JobContext, JobProgress, JobStatus
from adbsync.core.logging import get_logger, setup_logging
from adbsync.core.session import Session

__all__ = [
    "AdbSyncConfig",
    "AdbSyncError",
    "JobContext",
    "JobProgress",
    "JobStatus",
    "Session",
    "get_logger",
    "setup_logging",
]
