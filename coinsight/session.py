"""
User session: owns the notification log and settings for a logged-in user.
"""

import logging
from typing import Any, Optional

from coinsight.database.models import MAX_NOTIFICATIONS, Notification, Settings
from coinsight.database.repository import (
    NotificationRepository,
    SettingsRepository,
    row_to_notification,
)
from coinsight.database.store import StoreError
from coinsight.notifications.messages import portfolio_message
from coinsight.notifications.migration import MigrationCoordinator
from coinsight.notifications.realtime import PushChannel, Subscription
from coinsight.notifications.reconciler import NotificationLog
from coinsight.notifications.settings import SettingsGate

logger = logging.getLogger(__name__)


class UserSession:
    """
    Wires the notification log, settings gate, migration and push channel
    to the login state of one user.
    """

    def __init__(
        self,
        notification_repo: NotificationRepository,
        settings_repo: SettingsRepository,
        migration: Optional[MigrationCoordinator] = None,
        channel: Optional[PushChannel] = None,
        capacity: int = MAX_NOTIFICATIONS,
    ):
        self.notification_repo = notification_repo
        self.settings_repo = settings_repo
        self.migration = migration
        self.channel = channel
        self.log = NotificationLog(notification_repo, capacity=capacity)
        self.gate = SettingsGate()
        self.user_id: Optional[str] = None
        self._subscription: Optional[Subscription] = None

    @property
    def is_active(self) -> bool:
        return self.user_id is not None

    @property
    def settings(self) -> Optional[Settings]:
        return self.gate.settings

    def login(self, user_id: str) -> None:
        """
        Start a session: migrate legacy data, load settings and the log,
        then subscribe to pushed notifications.
        """
        if self.user_id is not None:
            self.logout()

        self.user_id = user_id
        logger.info(f"Starting session for {user_id}")

        if self.migration is not None:
            self.migration.migrate_settings_if_needed(user_id)
            self.migration.migrate_if_needed(user_id)

        try:
            self.gate.update(self.settings_repo.get_or_create(user_id))
        except StoreError as e:
            logger.error(f"Error loading settings for {user_id}: {e}")
            self.gate.update(None)

        if not self.log.load(user_id):
            logger.warning(
                f"Notification log for {user_id} starts empty; call reload() to retry"
            )

        if self.channel is not None:
            self._subscription = self.channel.subscribe(
                user_id, self._on_push, on_delete=self._on_push_delete
            )

    def reload(self) -> bool:
        """Re-read the notification log from the store."""
        if self.user_id is None:
            return False
        return self.log.load(self.user_id)

    def logout(self) -> None:
        """End the session: unsubscribe, clear the log, reset settings."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

        if self.user_id is not None:
            logger.info(f"Ending session for {self.user_id}")

        self.user_id = None
        self.log.reset()
        self.gate.reset()

    def notify(
        self,
        type: str,
        coin: str,
        quantity: float = 0,
        price: float = 0,
    ) -> Optional[Notification]:
        """
        Record a direct portfolio action (buy, sell, delete).

        Returns:
            The stored notification, or None when the session is inactive,
            the settings gate blocks the type, or the store rejects it
        """
        if self.user_id is None:
            return None
        if not self.gate.allows(type):
            logger.debug(f"Portfolio updates disabled, not recording {type} {coin}")
            return None

        notification = Notification(
            user_id=self.user_id,
            type=type,
            coin=coin,
            quantity=quantity,
            price=price,
            message=portfolio_message(type, coin, quantity, price),
        )
        try:
            created = self.notification_repo.create(notification)
        except StoreError as e:
            logger.error(f"Error creating {type} notification for {coin}: {e}")
            return None

        self.log.append(created)
        return created

    def update_settings(self, settings: Settings) -> bool:
        """Persist new preferences, then apply them to the gate."""
        if self.user_id is None:
            return False
        try:
            saved = self.settings_repo.update(self.user_id, settings)
        except StoreError as e:
            logger.error(f"Error saving settings for {self.user_id}: {e}")
            return False
        self.gate.update(saved)
        return True

    def mark_as_read(self, notification_id: str) -> bool:
        return self.log.mark_read(notification_id)

    def mark_all_as_read(self) -> bool:
        return self.log.mark_all_read()

    def clear_all(self) -> bool:
        return self.log.clear()

    def unread_count(self) -> int:
        return self.log.unread_count()

    def _on_push(self, row: dict[str, Any]) -> None:
        """Merge a pushed notification row into the log."""
        if row.get("user_id") != self.user_id:
            return
        self.log.append(row_to_notification(row))

    def _on_push_delete(self, row: dict[str, Any]) -> None:
        """Drop a notification deleted by another writer."""
        if row.get("user_id") != self.user_id:
            return
        self.log.remove(str(row["id"]))
