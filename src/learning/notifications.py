"""Mailbox of learning events for the surrounding notification channel."""

from datetime import datetime
from typing import Optional

import structlog

from shared_types import NotificationType

from .models import Notification, new_id

logger = structlog.get_logger()

COLLECTION = "notifications"


class NotificationQueue:
    """Append-only; entries are only ever marked dismissed or pruned."""

    def __init__(self, tracker=None):
        self.tracker = tracker
        self._items: list[Notification] = []

    def _changed(self, notification: Notification) -> None:
        if self.tracker is not None:
            self.tracker.mark(COLLECTION, notification)

    def _deleted(self, notifications: list[Notification]) -> None:
        if self.tracker is not None:
            for n in notifications:
                self.tracker.mark_deleted(COLLECTION, n.id)

    def __len__(self) -> int:
        return len(self._items)

    def add(
        self,
        type: NotificationType,
        message: str,
        now: datetime,
        pattern_id: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            id=new_id(),
            type=NotificationType(type),
            message=message,
            created_at=now,
            pattern_id=pattern_id,
        )
        self._items.append(notification)
        self._changed(notification)
        logger.info("notification_queued", notification_type=notification.type.value)
        return notification

    def dismiss(self, notification_id: str) -> Optional[Notification]:
        """Mark dismissed. Unknown ids are a no-op returning None."""
        for n in self._items:
            if n.id == notification_id:
                n.dismissed = True
                self._changed(n)
                return n
        logger.debug("notification_dismiss_unknown", notification_id=notification_id)
        return None

    def pending(self, newest_first: bool = True) -> list[Notification]:
        items = [n for n in self._items if not n.dismissed]
        return list(reversed(items)) if newest_first else items

    def all(self) -> list[Notification]:
        return list(self._items)

    def prune_dismissed(self) -> list[Notification]:
        """Drop dismissed entries; returns what was removed."""
        removed = [n for n in self._items if n.dismissed]
        self._items = [n for n in self._items if not n.dismissed]
        self._deleted(removed)
        return removed

    def clear(self) -> list[Notification]:
        removed, self._items = self._items, []
        self._deleted(removed)
        return removed

    def replace_all(self, notifications: list[Notification]) -> None:
        self._items = sorted(notifications, key=lambda n: n.created_at)
