"""
AdbSync event bus.

Typed publish/subscribe over a closed set of engine events.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any

from adbsync.core.logging import get_logger

logger = get_logger(__name__)


class EventType(Enum):
    """Events published by the engine."""

    DEVICE_CONNECTED = auto()
    DEVICE_DISCONNECTED = auto()
    SYNC_STARTED = auto()
    SYNC_PAUSED = auto()
    SYNC_COMPLETED = auto()
    SYNC_FAILED = auto()
    SYNC_CANCELLED = auto()


@dataclass(frozen=True)
class Event:
    """A published event.

    ``payload`` is a DeviceInfo for device events, the SyncTask for
    SYNC_STARTED and SYNC_PAUSED, and a SyncSummary for terminal sync events.
    """

    type: EventType
    payload: Any = None
    timestamp: datetime = field(default_factory=datetime.now)


EventCallback = Callable[[Event], None]


class EventBus:
    """Dispatches events to subscribers registered per event type."""

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[EventCallback]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, callback: EventCallback) -> None:
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: EventType, callback: EventCallback) -> bool:
        with self._lock:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)
                return True
        return False

    def publish(self, event_type: EventType, payload: Any = None) -> Event:
        event = Event(type=event_type, payload=payload)
        with self._lock:
            callbacks = list(self._subscribers.get(event_type, []))

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning(
                    "Event callback error",
                    event_type=event_type.name,
                    error=str(e),
                )
        return event
