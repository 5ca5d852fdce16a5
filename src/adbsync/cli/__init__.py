"""
AdbSync CLI Module.

Provides command-line interface for AdbSync operations.
"""

from adbsync.cli.main import cli, main

__all__ = ["main", "cli"]
