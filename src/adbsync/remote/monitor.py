"""
AdbSync device monitor.

Polls adb for attached devices and publishes connect/disconnect events.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from adbsync.core.errors import AdbSyncError
from adbsync.core.events import EventBus, EventType
from adbsync.core.logging import get_logger
from adbsync.core.models import DeviceInfo

if TYPE_CHECKING:
    from adbsync.remote.adb import AdbBridge

logger = get_logger(__name__)


class DeviceMonitor:
    """Background poller for device attach/detach."""

    def __init__(self, bridge: AdbBridge, bus: EventBus, interval: float = 3.0) -> None:
        self.bridge = bridge
        self.bus = bus
        self.interval = interval
        self._devices: dict[str, DeviceInfo] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def devices(self) -> list[DeviceInfo]:
        with self._lock:
            return list(self._devices.values())

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> tuple[list[DeviceInfo], list[DeviceInfo]]:
        """Refresh the device list; returns (connected, disconnected)."""
        current = {device.serial: device for device in self.bridge.list_devices()}

        with self._lock:
            connected = [d for s, d in current.items() if s not in self._devices]
            disconnected = [d for s, d in self._devices.items() if s not in current]
            self._devices = current

        for device in connected:
            logger.info("Device connected", serial=device.serial, model=device.model)
            self.bus.publish(EventType.DEVICE_CONNECTED, device)
        for device in disconnected:
            logger.warning("Device disconnected", serial=device.serial)
            self.bus.publish(EventType.DEVICE_DISCONNECTED, device)

        return connected, disconnected

    def start(self) -> None:
        """Take a baseline poll, then keep polling on a daemon thread."""
        if self.is_running:
            return
        self._stop.clear()
        self._poll()
        self._thread = threading.Thread(target=self._run, name="adbsync-monitor", daemon=True)
        self._thread.start()
        logger.debug("Device monitor started", interval=self.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug("Device monitor stopped")

    def _poll(self) -> None:
        try:
            self.poll_once()
        except AdbSyncError as e:
            logger.debug("Device poll failed", error=str(e))

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self._poll()
