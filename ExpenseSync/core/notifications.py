"""User-facing notification queue.

:class:`NotificationStore` keeps the three most recent notifications, oldest
first. It never expires anything on its own; :class:`NotificationExpiry` is the
view-side helper that removes each notification once its duration elapsed.
"""
import collections
import dataclasses
import enum
import logging
import uuid
from typing import Deque, Dict, Optional, Tuple

from PySide6 import QtCore

MAX_NOTIFICATIONS: int = 3
DEFAULT_DURATION: int = 5000


class NotificationType(enum.StrEnum):
    """Severity of a notification."""
    Success = 'success'
    Error = 'error'
    Info = 'info'
    Warning = 'warning'


@dataclasses.dataclass(frozen=True)
class Notification:
    id: str
    message: str
    type: NotificationType
    duration: int


def new_notification_id() -> str:
    return uuid.uuid4().hex


class NotificationStore(QtCore.QObject):
    """Bounded, ordered queue of notifications.

    Signals:
        notificationsChanged (tuple): Emitted with the retained notifications, oldest first.
    """
    notificationsChanged = QtCore.Signal(object)

    def __init__(self, max_notifications: int = MAX_NOTIFICATIONS,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._notifications: Deque[Notification] = collections.deque(maxlen=max_notifications)

    @property
    def notifications(self) -> Tuple[Notification, ...]:
        return tuple(self._notifications)

    def add_notification(self, message: str, type: NotificationType | str = NotificationType.Info,
                         duration: int = DEFAULT_DURATION) -> str:
        """Append a notification, evicting the oldest beyond the bound.

        Args:
            message: Text shown to the user.
            type: Severity, one of :class:`NotificationType`.
            duration: Display time in milliseconds. Must be positive.

        Returns:
            str: The id of the new notification. It is returned for convenience,
            e.g. to remove the notification early, and callers are free to ignore it.

        Raises:
            ValueError: If type is unknown or duration is not a positive int.
        """
        notification_type = NotificationType(type)
        if not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0:
            raise ValueError(f'Notification duration must be a positive int, got {duration!r}.')

        notification = Notification(
            id=new_notification_id(),
            message=str(message),
            type=notification_type,
            duration=duration,
        )
        self._notifications.append(notification)
        logging.debug(f'Notification added [{notification_type}]: {message}')
        self.notificationsChanged.emit(self.notifications)
        return notification.id

    def remove_notification(self, notification_id: str) -> None:
        """Remove the notification with the given id. Unknown ids are ignored."""
        for notification in self._notifications:
            if notification.id == notification_id:
                self._notifications.remove(notification)
                self.notificationsChanged.emit(self.notifications)
                return
        logging.debug(f'Notification "{notification_id}" not found, nothing to remove.')

    def clear(self) -> None:
        if not self._notifications:
            return
        self._notifications.clear()
        self.notificationsChanged.emit(self.notifications)


class NotificationExpiry(QtCore.QObject):
    """Removes notifications from a store once their duration elapsed.

    One single-shot timer runs per retained notification. Timers of
    notifications that left the store early (removed or evicted) are stopped,
    and :meth:`dispose` stops every timer, so a timer never fires for a stale id.
    """

    def __init__(self, store: NotificationStore, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.store = store
        self._timers: Dict[str, QtCore.QTimer] = {}
        self._disposed: bool = False

        self.store.notificationsChanged.connect(self.sync_timers)
        self.sync_timers(self.store.notifications)

    @property
    def active_ids(self) -> Tuple[str, ...]:
        return tuple(self._timers)

    @QtCore.Slot(object)
    def sync_timers(self, notifications: Tuple[Notification, ...]) -> None:
        if self._disposed:
            return

        current = {n.id: n for n in notifications}

        for notification_id in list(self._timers):
            if notification_id not in current:
                self._cancel(notification_id)

        for notification_id, notification in current.items():
            if notification_id in self._timers:
                continue
            timer = QtCore.QTimer(self)
            timer.setSingleShot(True)
            timer.setInterval(notification.duration)
            timer.timeout.connect(lambda i=notification_id: self._expire(i))
            self._timers[notification_id] = timer
            timer.start()

    def _cancel(self, notification_id: str) -> None:
        timer = self._timers.pop(notification_id, None)
        if timer is None:
            return
        timer.stop()
        timer.deleteLater()

    def _expire(self, notification_id: str) -> None:
        self._cancel(notification_id)
        if self._disposed:
            return
        self.store.remove_notification(notification_id)

    def dispose(self) -> None:
        """Stop every timer and stop listening to the store."""
        if self._disposed:
            return
        self._disposed = True
        try:
            self.store.notificationsChanged.disconnect(self.sync_timers)
        except (RuntimeError, TypeError):
            logging.debug('Notification expiry was already disconnected.')
        for notification_id in list(self._timers):
            self._cancel(notification_id)
