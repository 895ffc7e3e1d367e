"""Broadcast channel shared by every study session on the same data directory.

Delivery is fire-and-forget with no ordering or exactly-once guarantee, so
subscribers must tolerate duplicates and events they produced themselves.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from gre_insight.logging_config import get_logger

logger = get_logger(__name__)


class SyncEventType(str, Enum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    DATA_UPDATE = "DATA_UPDATE"


@dataclass(frozen=True)
class SyncEvent:
    type: SyncEventType
    user_id: str | None = None
    origin: str | None = None


SyncCallback = Callable[[SyncEvent], None]


class EventBus(Protocol):
    def publish(self, event: SyncEvent) -> None: ...

    def subscribe(self, callback: SyncCallback) -> Callable[[], None]: ...


class InProcessEventBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[SyncCallback] = []

    def publish(self, event: SyncEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug("publish %s user=%s origin=%s to %d subscribers", event.type.value, event.user_id, event.origin, len(subscribers))
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("sync subscriber failed on %s", event.type.value)

    def subscribe(self, callback: SyncCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
