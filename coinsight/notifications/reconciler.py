"""
Session-local notification log.

Entries arrive from three places: the response of a direct insert, the push
channel echo of that same insert, and the initial load from the store. They
are merged by id, so the order in which duplicates arrive does not matter.
Rows deleted by another writer are dropped when their retraction is pushed.
"""

import logging
from typing import Optional

from coinsight.database.models import MAX_NOTIFICATIONS, Notification
from coinsight.database.repository import NotificationRepository
from coinsight.database.store import StoreError

logger = logging.getLogger(__name__)


class NotificationLog:
    """Bounded, de-duplicated, newest-first log for one user session."""

    def __init__(
        self,
        repo: NotificationRepository,
        capacity: int = MAX_NOTIFICATIONS,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.repo = repo
        self.capacity = capacity
        self.user_id: Optional[str] = None
        # Most recently appended first
        self._entries: list[Notification] = []

    @property
    def notifications(self) -> list[Notification]:
        """Entries for display: created_at descending, ties in append order."""
        return sorted(self._entries, key=lambda n: n.created_at, reverse=True)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, notification_id: object) -> bool:
        return any(n.id == notification_id for n in self._entries)

    def get(self, notification_id: str) -> Optional[Notification]:
        """Look up an entry by id."""
        for notification in self._entries:
            if notification.id == notification_id:
                return notification
        return None

    def append(self, notification: Notification) -> bool:
        """
        Merge a notification into the log.

        Returns:
            False if an entry with the same id was already present
        """
        if notification.id is not None and notification.id in self:
            return False

        self._entries.insert(0, notification)
        del self._entries[self.capacity:]
        return True

    def remove(self, notification_id: str) -> bool:
        """Drop an entry deleted elsewhere. Returns False if it was not present."""
        before = len(self._entries)
        self._entries = [n for n in self._entries if n.id != notification_id]
        return len(self._entries) != before

    def load(self, user_id: str) -> bool:
        """
        Replace the log with the user's most recent stored notifications.

        The log is bound to user_id even when the read fails, so later
        writes still reach the store.

        Returns:
            False if the store could not be read; entries are left untouched
        """
        self.user_id = user_id
        try:
            recent = self.repo.get_recent(user_id, limit=self.capacity)
        except StoreError as e:
            logger.error(f"Error loading notifications for {user_id}: {e}")
            return False

        # recent is newest first; keep that as the append order
        self._entries = list(recent[: self.capacity])
        logger.debug(f"Loaded {len(self._entries)} notifications for {user_id}")
        return True

    def reset(self) -> None:
        """Drop all local state at session end."""
        self.user_id = None
        self._entries = []

    def mark_read(self, notification_id: str) -> bool:
        """
        Mark one notification read in the store, then locally.

        Returns:
            False if the store failed or holds no such notification
        """
        if self.user_id is None:
            return False

        try:
            count = self.repo.mark_read(self.user_id, notification_id)
        except StoreError as e:
            logger.error(f"Error marking notification {notification_id} as read: {e}")
            return False

        if count == 0:
            logger.warning(f"Notification {notification_id} not found for {self.user_id}")
            return False

        self._entries = [
            n.as_read() if n.id == notification_id else n for n in self._entries
        ]
        return True

    def mark_all_read(self) -> bool:
        """Mark every notification read in the store, then locally."""
        if self.user_id is None:
            return False

        try:
            self.repo.mark_all_read(self.user_id)
        except StoreError as e:
            logger.error(f"Error marking all notifications as read: {e}")
            return False

        self._entries = [n if n.read else n.as_read() for n in self._entries]
        return True

    def clear(self) -> bool:
        """Delete all of the user's notifications in the store, then locally."""
        if self.user_id is None:
            return False

        try:
            self.repo.delete_all(self.user_id)
        except StoreError as e:
            logger.error(f"Error clearing notifications: {e}")
            return False

        self._entries = []
        return True

    def unread_count(self) -> int:
        """Number of unread entries."""
        return sum(1 for n in self._entries if not n.read)

    def latest(self, count: int = 5) -> list[Notification]:
        """The newest entries for display."""
        return self.notifications[:count]
