"""
AdbSync - One-way sync from Android devices to a local directory.

Compares a device's file tree with a local tree over adb and pulls new and
modified files with conflict handling, pause/resume and retries.
"""

__version__ = "1.0.0"
__author__ = "AdbSync Team"

from adbsync.core.config import AdbSyncConfig
from adbsync.core.session import Session

__all__ = ["AdbSyncConfig", "Session", "__version__"]
