"""
AdbSync remote layer.

Command execution, adb access and listing parsers for Android devices.
"""

from adbsync.remote.adb import AdbBridge, find_adb_path
from adbsync.remote.base import CommandResult, CommandRunner
from adbsync.remote.listing import RemoteListingParser
from adbsync.remote.monitor import DeviceMonitor

__all__ = [
    "AdbBridge",
    "CommandResult",
    "CommandRunner",
    "DeviceMonitor",
    "RemoteListingParser",
    "find_adb_path",
]
