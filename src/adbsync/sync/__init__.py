"""
AdbSync sync module.

Diffing, filtering, retries and transfer orchestration.
"""

from adbsync.sync.diff import DiffEngine
from adbsync.sync.filters import PRESETS, FilterRule, FilterRuleSet
from adbsync.sync.manager import SyncManager
from adbsync.sync.retry import RetryItem, RetryManager
from adbsync.sync.scanner import LocalTreeScanner
from adbsync.sync.task import SyncSummary, SyncTask

__all__ = [
    "DiffEngine",
    "FilterRule",
    "FilterRuleSet",
    "LocalTreeScanner",
    "PRESETS",
    "RetryItem",
    "RetryManager",
    "SyncManager",
    "SyncSummary",
    "SyncTask",
]
