"""Transient user-visible notifications (toasts)."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

MAX_NOTIFICATIONS = 20


class Variant(str, Enum):
    DEFAULT = "default"
    SUCCESS = "success"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str | None = None
    variant: Variant = Variant.DEFAULT
    created_at: float = field(default_factory=time.time)


class Notifier:
    def __init__(self, max_notifications: int = MAX_NOTIFICATIONS):
        self._notifications: deque[Notification] = deque(maxlen=max_notifications)
        self._subscribers: list[Callable[[Notification], None]] = []

    @property
    def notifications(self) -> list[Notification]:
        return list(self._notifications)

    def subscribe(self, callback: Callable[[Notification], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    def notify(self, title: str, description: str | None = None, variant: Variant = Variant.DEFAULT) -> Notification:
        notification = Notification(title, description, variant)
        self._notifications.append(notification)
        level = logging.WARNING if variant is Variant.DESTRUCTIVE else logging.INFO
        logger.log(level, "Notification [%s] %s: %s", variant.value, title, description or "")
        for callback in list(self._subscribers):
            callback(notification)
        return notification

    def dismiss(self, notification: Notification) -> None:
        if notification in self._notifications:
            self._notifications.remove(notification)

    def clear(self) -> None:
        self._notifications.clear()
