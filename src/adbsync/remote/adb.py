"""
AdbSync adb bridge.

Implements the remote operations (device discovery, listing, path
resolution, size queries and pulls) on top of the adb command-line tool.
"""

from __future__ import annotations

import os
import shlex
import shutil
import threading
from datetime import datetime
from pathlib import Path

from adbsync.core.config import RemoteConfig
from adbsync.core.errors import CommandFailed, DeviceNotFound, TransportNotFound
from adbsync.core.logging import get_logger
from adbsync.core.models import ConnectionType, DeviceInfo
from adbsync.remote.base import CommandResult, CommandRunner
from adbsync.remote.parsers import (
    is_device_missing,
    parse_adb_version,
    parse_devices_output,
    parse_df_output,
    parse_du_output,
    parse_stat_output,
)

logger = get_logger(__name__)

WELL_KNOWN_ADB_PATHS = (
    "~/Library/Android/sdk/platform-tools/adb",
    "~/Android/Sdk/platform-tools/adb",
    "/opt/homebrew/bin/adb",
    "/usr/local/bin/adb",
    "/usr/bin/adb",
)

# du invocations in preference order with the unit each reports in
DU_TIERS: tuple[tuple[str, int], ...] = (
    ("-sb", 1),
    ("-sk", 1024),
    ("-s", 512),
)


def find_adb_path(configured: str | None = None) -> str | None:
    """Locate the adb executable: configured path, well-known paths, then PATH."""
    candidates = [configured] if configured else []
    candidates.extend(WELL_KNOWN_ADB_PATHS)

    for candidate in candidates:
        path = Path(candidate).expanduser()
        if path.is_file() and os.access(path, os.X_OK):
            return str(path)

    return shutil.which("adb")


class AdbBridge:
    """Remote operations against Android devices through adb."""

    def __init__(self, config: RemoteConfig, runner: CommandRunner | None = None) -> None:
        self.config = config
        self.runner = runner or CommandRunner(kill_grace_seconds=config.kill_grace_seconds)
        self._adb_path: str | None = None

    @property
    def adb_path(self) -> str:
        if self._adb_path is None:
            path = find_adb_path(self.config.adb_path)
            if path is None:
                raise TransportNotFound(
                    "adb executable not found; install Android platform-tools "
                    "or set remote.adb_path"
                )
            self._adb_path = path
            logger.debug("Using adb", path=path)
        return self._adb_path

    @property
    def is_available(self) -> bool:
        try:
            self.adb_path
        except TransportNotFound:
            return False
        return True

    def _command(self, args: list[str], serial: str | None = None) -> list[str]:
        command = [self.adb_path]
        if serial:
            command.extend(["-s", serial])
        command.extend(args)
        return command

    def run(
        self,
        args: list[str],
        serial: str | None = None,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        """Run an adb command, returning its result whatever the exit status."""
        return self.runner.run(
            self._command(args, serial),
            timeout=timeout or self.config.command_timeout_seconds,
            cancel_event=cancel_event,
        )

    def execute(
        self,
        args: list[str],
        serial: str | None = None,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Run an adb command and return stdout.

        Non-zero exits raise CommandFailed, or DeviceNotFound when adb reports
        the device as missing or offline.
        """
        try:
            return self.runner.execute(
                self._command(args, serial),
                timeout=timeout or self.config.command_timeout_seconds,
                cancel_event=cancel_event,
            )
        except CommandFailed as e:
            if is_device_missing(e.stderr or str(e)):
                target = f"Device {serial}" if serial else "Device"
                raise DeviceNotFound(f"{target} not available: {e}") from e
            raise

    def shell(
        self,
        serial: str,
        command: str,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> str:
        return self.execute(
            ["shell", command], serial=serial, timeout=timeout, cancel_event=cancel_event
        )

    # ---------------------------------------------------------------- devices

    def version(self) -> str:
        return parse_adb_version(self.execute(["version"]))

    def get_property(self, serial: str, prop: str) -> str:
        return self.execute(["shell", "getprop", prop], serial=serial).strip()

    def list_devices(self) -> list[DeviceInfo]:
        """List attached devices in the ``device`` state."""
        output = self.execute(["devices", "-l"])
        devices: list[DeviceInfo] = []

        for raw in parse_devices_output(output):
            if raw["state"] != "device":
                logger.debug("Ignoring device", serial=raw["serial"], state=raw["state"])
                continue

            serial = raw["serial"]
            attributes = raw["attributes"]
            model = attributes.get("model", "").replace("_", " ")
            name = attributes.get("device", "")
            android_version = "Unknown"

            try:
                android_version = self.get_property(serial, "ro.build.version.release") or "Unknown"
                if not model:
                    model = self.get_property(serial, "ro.product.model")
                if not name:
                    name = self.get_property(serial, "ro.product.name")
            except CommandFailed as e:
                logger.warning("Failed to read device properties", serial=serial, error=str(e))

            devices.append(
                DeviceInfo(
                    serial=serial,
                    name=name,
                    model=model or "Unknown",
                    android_version=android_version,
                    state=raw["state"],
                    connection_type=self._connection_type(serial),
                )
            )

        return devices

    @staticmethod
    def _connection_type(serial: str) -> ConnectionType:
        if ":" in serial or serial.startswith("adb-"):
            return ConnectionType.WIFI
        return ConnectionType.USB

    # ---------------------------------------------------------------- files

    def list_directory(
        self,
        serial: str,
        path: str,
        recursive: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Return raw ``ls -l`` (or ``ls -lR``) output for a remote path.

        ls exits non-zero when some subdirectories are unreadable; whatever
        was listed is still returned in that case.
        """
        flags = "-lR" if recursive else "-l"
        result = self.run(
            ["shell", f"ls {flags} {shlex.quote(path)}"],
            serial=serial,
            timeout=self.config.listing_timeout_seconds,
            cancel_event=cancel_event,
        )
        if result.success:
            return result.stdout

        if is_device_missing(result.stderr):
            raise DeviceNotFound(f"Device {serial} not available: {result.stderr.strip()}")
        if result.stdout.strip():
            logger.warning(
                "Listing incomplete",
                serial=serial,
                path=path,
                stderr=result.stderr.strip()[:200],
            )
            return result.stdout

        raise CommandFailed(
            result.stderr.strip() or f"ls failed for {path}",
            returncode=result.returncode,
            stderr=result.stderr,
            command=list(result.command),
        )

    def resolve_path(
        self,
        serial: str,
        path: str,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Resolve a possibly symlinked remote path, falling back to ``path``."""
        try:
            output = self.shell(
                serial, f"readlink -f {shlex.quote(path)}", cancel_event=cancel_event
            )
        except CommandFailed as e:
            logger.debug("Path resolution failed", path=path, error=str(e))
            return path

        resolved = output.strip().splitlines()[0].strip() if output.strip() else ""
        return resolved if resolved.startswith("/") else path

    def stat(
        self,
        serial: str,
        path: str,
        cancel_event: threading.Event | None = None,
    ) -> tuple[int, datetime] | None:
        """Return (size, mtime) for a remote path, or None if unavailable."""
        try:
            output = self.shell(
                serial, f'stat -c "%s %Y" {shlex.quote(path)}', cancel_event=cancel_event
            )
        except CommandFailed as e:
            logger.debug("stat failed", path=path, error=str(e))
            return None
        return parse_stat_output(output)

    def du(
        self,
        serial: str,
        path: str,
        cancel_event: threading.Event | None = None,
    ) -> int | None:
        """Directory size in bytes, trying byte-exact, then KiB, then block counts."""
        for flag, unit in DU_TIERS:
            try:
                output = self.shell(
                    serial, f"du {flag} {shlex.quote(path)}", cancel_event=cancel_event
                )
            except CommandFailed as e:
                logger.debug("du variant failed", flag=flag, path=path, error=str(e))
                continue

            value = parse_du_output(output)
            if value is not None:
                return value * unit

        return None

    def storage_info(self, serial: str, path: str = "/sdcard") -> tuple[int, int]:
        """Return (total, available) bytes for the filesystem holding ``path``."""
        output = self.shell(serial, f"df {shlex.quote(path)}")
        return parse_df_output(output)

    def pull(
        self,
        serial: str,
        remote_path: str,
        local_path: str | Path,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Copy one remote file to a local path."""
        self.execute(
            ["pull", remote_path, str(local_path)],
            serial=serial,
            timeout=self.config.transfer_timeout_seconds,
            cancel_event=cancel_event,
        )
