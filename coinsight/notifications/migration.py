"""
One-time move of the legacy local snapshot into the record store.

A user with any stored record is treated as already migrated. That check
cannot tell a finished migration from data that arrived some other way, but
in both cases the snapshot must not be imported again, so it is discarded.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from coinsight.data.legacy import (
    NOTIFICATIONS_KEY,
    SETTINGS_KEY,
    LegacyStorage,
)
from coinsight.database.models import (
    MAX_NOTIFICATIONS,
    NOTIFICATION_TYPES,
    PRICE_ALERT,
    Notification,
    Settings,
    utcnow,
)
from coinsight.database.repository import (
    NotificationRepository,
    SettingsRepository,
    parse_timestamp,
)
from coinsight.database.store import StoreError

logger = logging.getLogger(__name__)

CURRENCY_KEY = "coinsight_currency"

# Types written by older clients
LEGACY_TYPE_ALIASES = {"alert": PRICE_ALERT}


def _legacy_created_at(entry: dict[str, Any]) -> datetime:
    """Creation time of a legacy entry (epoch millis or ISO string)."""
    timestamp = entry.get("timestamp")
    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    parsed = parse_timestamp(entry.get("created_at") or timestamp)
    return parsed or utcnow()


def legacy_to_notification(entry: Any, user_id: str) -> Optional[Notification]:
    """Convert a legacy snapshot entry, or None if it is unusable."""
    if not isinstance(entry, dict):
        return None

    type = LEGACY_TYPE_ALIASES.get(entry.get("type"), entry.get("type"))
    if type not in NOTIFICATION_TYPES:
        return None

    try:
        return Notification(
            user_id=user_id,
            type=type,
            coin=str(entry["coin"]),
            quantity=float(entry.get("quantity") or 0),
            price=float(entry.get("price") or 0),
            message=str(entry.get("message") or ""),
            read=bool(entry.get("read", False)),
            created_at=_legacy_created_at(entry),
        )
    except (KeyError, TypeError, ValueError, OverflowError, OSError):
        return None


class MigrationCoordinator:
    """Imports legacy notifications and settings once per user."""

    def __init__(
        self,
        legacy: LegacyStorage,
        notification_repo: NotificationRepository,
        settings_repo: SettingsRepository,
        capacity: int = MAX_NOTIFICATIONS,
    ):
        self.legacy = legacy
        self.notification_repo = notification_repo
        self.settings_repo = settings_repo
        self.capacity = capacity

    def migrate_if_needed(self, user_id: Optional[str]) -> bool:
        """
        Import the legacy notification snapshot for a user.

        Safe to call on every session start.

        Returns:
            True when there is nothing left to migrate, False on failure
            (the snapshot is then kept for the next attempt)
        """
        if not user_id:
            return False

        snapshot = self.legacy.get(NOTIFICATIONS_KEY, [])
        if not snapshot:
            return True
        if not isinstance(snapshot, list):
            logger.warning("Legacy notification snapshot is not a list, discarding")
            self.legacy.remove(NOTIFICATIONS_KEY)
            return True

        try:
            if self.notification_repo.has_any(user_id):
                logger.info(f"User {user_id} already has notifications, skipping migration")
                self.legacy.remove(NOTIFICATIONS_KEY)
                return True

            notifications = []
            for entry in snapshot:
                notification = legacy_to_notification(entry, user_id)
                if notification is None:
                    logger.warning(f"Skipping unusable legacy notification: {entry!r}")
                    continue
                notifications.append(notification)

            notifications.sort(key=lambda n: n.created_at, reverse=True)
            notifications = notifications[: self.capacity]

            if notifications:
                self.notification_repo.create_many(notifications)
        except StoreError as e:
            logger.error(f"Error migrating notifications for {user_id}: {e}")
            return False

        self.legacy.remove(NOTIFICATIONS_KEY)
        logger.info(f"Migrated {len(notifications)} legacy notifications for {user_id}")
        return True

    def migrate_settings_if_needed(self, user_id: Optional[str]) -> bool:
        """
        Import the legacy settings snapshot for a user.

        Returns:
            True when there is nothing left to migrate, False on failure
        """
        if not user_id:
            return False

        snapshot = self.legacy.get(SETTINGS_KEY, {})
        if not snapshot or not isinstance(snapshot, dict):
            return True

        try:
            if self.settings_repo.exists(user_id):
                self.legacy.remove(SETTINGS_KEY)
                return True

            defaults = Settings()
            settings = Settings(
                portfolio_updates=bool(
                    snapshot.get("portfolioUpdates", defaults.portfolio_updates)
                ),
                market_trends=bool(snapshot.get("marketTrends", defaults.market_trends)),
                price_alerts_enabled=bool(
                    snapshot.get("priceAlertsEnabled", defaults.price_alerts_enabled)
                ),
                currency=str(self.legacy.get(CURRENCY_KEY, defaults.currency)),
            )
            self.settings_repo.create(user_id, settings)
        except StoreError as e:
            logger.error(f"Error migrating settings for {user_id}: {e}")
            return False

        self.legacy.remove(SETTINGS_KEY)
        logger.info(f"Migrated legacy settings for {user_id}")
        return True
