"""Transient, auto-dismissing user notifications."""

import itertools
from collections.abc import Callable
from dataclasses import dataclass

from clip_studio.config import settings
from clip_studio.domain.enums import NotificationLevel
from clip_studio.logging import get_logger
from clip_studio.utils.timers import Scheduler, TimerHandle

logger = get_logger(__name__)


@dataclass
class Notification:
    """A toast-style message shown to the user."""

    id: int
    level: NotificationLevel
    message: str
    ttl: float


class Notifier:
    """Keeps the currently visible notifications and dismisses them on a timer.

    Every notification is also appended to ``log`` so no message is lost once
    its toast disappears.
    """

    def __init__(self, scheduler: Scheduler, ttl: float | None = None) -> None:
        self.scheduler = scheduler
        self.ttl = ttl if ttl is not None else settings.notification_ttl_seconds
        self.log: list[Notification] = []
        self._active: dict[int, Notification] = {}
        self._timers: dict[int, TimerHandle] = {}
        self._ids = itertools.count(1)
        self._listeners: list[Callable[[Notification], None]] = []

    @property
    def active(self) -> list[Notification]:
        return list(self._active.values())

    def subscribe(self, listener: Callable[[Notification], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(
        self, level: NotificationLevel, message: str, ttl: float | None = None
    ) -> Notification:
        notification = Notification(
            id=next(self._ids),
            level=level,
            message=message,
            ttl=self.ttl if ttl is None else ttl,
        )
        self.log.append(notification)
        self._active[notification.id] = notification
        self._timers[notification.id] = self.scheduler.call_later(
            notification.ttl, lambda: self.dismiss(notification.id)
        )
        logger.info("notification", level=str(level), message=message)

        for listener in list(self._listeners):
            listener(notification)
        return notification

    def info(self, message: str, ttl: float | None = None) -> Notification:
        return self.notify(NotificationLevel.INFO, message, ttl)

    def success(self, message: str, ttl: float | None = None) -> Notification:
        return self.notify(NotificationLevel.SUCCESS, message, ttl)

    def warning(self, message: str, ttl: float | None = None) -> Notification:
        return self.notify(NotificationLevel.WARNING, message, ttl)

    def error(self, message: str, ttl: float | None = None) -> Notification:
        return self.notify(NotificationLevel.ERROR, message, ttl)

    def dismiss(self, notification_id: int) -> None:
        self._active.pop(notification_id, None)
        timer = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.cancel()
