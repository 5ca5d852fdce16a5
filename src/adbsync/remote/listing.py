"""
AdbSync remote listing.

Runs remote listing commands and turns their output into FileEntry
collections keyed against one canonical sync root.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from adbsync.core.logging import get_logger
from adbsync.core.models import FileEntry
from adbsync.remote.parsers import parse_ls_output

if TYPE_CHECKING:
    from adbsync.remote.adb import AdbBridge

logger = get_logger(__name__)


class RemoteListingParser:
    """Lists remote trees through an adb bridge.

    Mount roots such as ``/sdcard`` are usually symlinks; every listing is
    taken from the resolved path so relative paths in one scan share a root.
    Resolutions are cached per (serial, path).
    """

    def __init__(self, bridge: AdbBridge) -> None:
        self.bridge = bridge
        self._resolved: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def resolve_root(
        self,
        serial: str,
        path: str,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Return the canonical form of a remote path."""
        path = path.rstrip("/") or "/"
        key = (serial, path)
        with self._lock:
            cached = self._resolved.get(key)
        if cached is not None:
            return cached

        resolved = self.bridge.resolve_path(serial, path, cancel_event=cancel_event)
        resolved = resolved.rstrip("/") or "/"
        if resolved != path:
            logger.debug("Resolved remote root", path=path, resolved=resolved)

        with self._lock:
            self._resolved[key] = resolved
        return resolved

    def list(
        self,
        serial: str,
        path: str,
        cancel_event: threading.Event | None = None,
        recursive: bool = True,
        root: str | None = None,
    ) -> list[FileEntry]:
        """List ``path`` on a device.

        Relative paths are computed against ``root`` when given (e.g. the sync
        source root when expanding a subdirectory), otherwise against ``path``.
        """
        canonical = self.resolve_root(serial, path, cancel_event=cancel_event)
        canonical_root = (
            self.resolve_root(serial, root, cancel_event=cancel_event)
            if root is not None
            else canonical
        )

        output = self.bridge.list_directory(
            serial, canonical, recursive=recursive, cancel_event=cancel_event
        )
        entries = parse_ls_output(output, base_path=canonical, root=canonical_root)

        logger.info(
            "Listed remote path",
            serial=serial,
            path=canonical,
            entries=len(entries),
            recursive=recursive,
        )
        return entries

    def directory_size(
        self,
        serial: str,
        path: str,
        cancel_event: threading.Event | None = None,
    ) -> int | None:
        """Total size in bytes of a remote directory, or None if unknown."""
        canonical = self.resolve_root(serial, path, cancel_event=cancel_event)
        return self.bridge.du(serial, canonical, cancel_event=cancel_event)

    def directory_sizes(
        self,
        serial: str,
        paths: list[str],
        cancel_event: threading.Event | None = None,
    ) -> dict[str, int]:
        """Sizes for several directories; paths whose size is unknown are omitted."""
        sizes: dict[str, int] = {}
        for path in paths:
            size = self.directory_size(serial, path, cancel_event=cancel_event)
            if size is not None:
                sizes[path] = size
        return sizes

    def clear_cache(self, serial: str | None = None) -> None:
        """Forget cached root resolutions, for one device or all."""
        with self._lock:
            if serial is None:
                self._resolved.clear()
            else:
                for key in [k for k in self._resolved if k[0] == serial]:
                    del self._resolved[key]
