"""
Repository classes mapping store rows to models.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Optional

from .models import (
    CONDITIONS,
    MAX_NOTIFICATIONS,
    NOTIFICATION_TYPES,
    AlertRule,
    Notification,
    Settings,
    utcnow,
)
from .store import NOTIFICATIONS, PRICE_ALERTS, USER_SETTINGS, RemoteStore


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def row_to_notification(row: dict[str, Any]) -> Notification:
    """Convert store row to Notification."""
    return Notification(
        id=str(row["id"]),
        user_id=row.get("user_id"),
        type=row["type"],
        coin=row["coin"],
        quantity=float(row.get("quantity") or 0),
        price=float(row.get("price") or 0),
        message=row["message"],
        read=bool(row.get("read", False)),
        created_at=parse_timestamp(row.get("created_at")) or utcnow(),
    )


def notification_to_row(notification: Notification) -> dict[str, Any]:
    """Convert Notification to a store row."""
    row = {
        "user_id": notification.user_id,
        "type": notification.type,
        "coin": notification.coin,
        "quantity": notification.quantity,
        "price": notification.price,
        "message": notification.message,
        "read": notification.read,
        "created_at": format_timestamp(notification.created_at),
    }
    if notification.id is not None:
        row["id"] = notification.id
    return row


class NotificationRepository:
    """Store operations for notifications, always scoped by user."""

    def __init__(self, store: RemoteStore):
        self.store = store

    def create(self, notification: Notification) -> Notification:
        """Insert a notification and return it as stored."""
        if notification.type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {notification.type}")
        rows = self.store.insert(NOTIFICATIONS, notification_to_row(notification))
        return row_to_notification(rows[0])

    def create_many(self, notifications: list[Notification]) -> list[Notification]:
        """Insert several notifications in one call."""
        rows = self.store.insert(
            NOTIFICATIONS, [notification_to_row(n) for n in notifications]
        )
        return [row_to_notification(row) for row in rows]

    def get_recent(
        self, user_id: str, limit: int = MAX_NOTIFICATIONS
    ) -> list[Notification]:
        """Most recent notifications for a user, newest first."""
        rows = self.store.select(
            NOTIFICATIONS,
            {"user_id": user_id},
            order="created_at.desc",
            limit=limit,
        )
        return [row_to_notification(row) for row in rows]

    def has_any(self, user_id: str) -> bool:
        """Check whether the user has at least one stored notification."""
        return self.store.exists(NOTIFICATIONS, {"user_id": user_id})

    def mark_read(self, user_id: str, notification_id: str) -> int:
        """Mark one notification as read. Returns number of rows updated."""
        rows = self.store.update(
            NOTIFICATIONS,
            {"id": notification_id, "user_id": user_id},
            {"read": True},
        )
        return len(rows)

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of a user as read."""
        rows = self.store.update(
            NOTIFICATIONS,
            {"user_id": user_id, "read": False},
            {"read": True},
        )
        return len(rows)

    def delete(self, user_id: str, notification_id: str) -> int:
        """Delete a single notification."""
        return self.store.delete(
            NOTIFICATIONS, {"id": notification_id, "user_id": user_id}
        )

    def delete_all(self, user_id: str) -> int:
        """Delete all notifications of a user."""
        return self.store.delete(NOTIFICATIONS, {"user_id": user_id})


def row_to_rule(row: dict[str, Any]) -> AlertRule:
    """Convert store row to AlertRule."""
    return AlertRule(
        id=str(row["id"]),
        user_id=row["user_id"],
        coin_id=row["coin_id"],
        symbol=row["symbol"],
        coin_name=row["coin_name"],
        target_price=float(row["target_price"]),
        condition=row["condition"],
        is_active=bool(row["is_active"]),
        triggered_at=parse_timestamp(row.get("triggered_at")),
        created_at=parse_timestamp(row.get("created_at")),
    )


class AlertRuleRepository:
    """Store operations for price alert rules."""

    def __init__(self, store: RemoteStore):
        self.store = store

    def create(self, rule: AlertRule) -> AlertRule:
        """
        Create a new price alert.

        Raises:
            ValueError: If the condition or target price is invalid
        """
        if rule.condition not in CONDITIONS:
            raise ValueError('Invalid condition. Must be "above" or "below"')
        if rule.target_price <= 0:
            raise ValueError("Target price must be greater than 0")

        row = {
            "user_id": rule.user_id,
            "coin_id": rule.coin_id,
            "coin_name": rule.coin_name,
            "symbol": rule.symbol,
            "target_price": rule.target_price,
            "condition": rule.condition,
            "is_active": rule.is_active,
            "triggered_at": format_timestamp(rule.triggered_at),
            "created_at": format_timestamp(rule.created_at or utcnow()),
        }
        if rule.id is not None:
            row["id"] = rule.id
        rows = self.store.insert(PRICE_ALERTS, row)
        return row_to_rule(rows[0])

    def get_by_id(self, rule_id: str) -> Optional[AlertRule]:
        """Get rule by ID."""
        rows = self.store.select(PRICE_ALERTS, {"id": rule_id}, limit=1)
        if not rows:
            return None
        return row_to_rule(rows[0])

    def get_user_rules(self, user_id: str) -> list[AlertRule]:
        """Get all rules for a user, newest first."""
        rows = self.store.select(
            PRICE_ALERTS, {"user_id": user_id}, order="created_at.desc"
        )
        return [row_to_rule(row) for row in rows]

    def get_active_rules(
        self, user_id: str, coin_id: Optional[str] = None
    ) -> list[AlertRule]:
        """Get rules still eligible for evaluation, optionally for one coin."""
        filters = {"user_id": user_id, "is_active": True, "triggered_at": None}
        if coin_id is not None:
            filters["coin_id"] = coin_id
        rows = self.store.select(PRICE_ALERTS, filters, order="created_at.asc")
        return [row_to_rule(row) for row in rows]

    def get_users_with_active_rules(self) -> list[str]:
        """Distinct user IDs that own at least one eligible rule."""
        rows = self.store.select(
            PRICE_ALERTS, {"is_active": True, "triggered_at": None}
        )
        return list(dict.fromkeys(row["user_id"] for row in rows))

    def mark_triggered(self, rule: AlertRule, triggered_at: datetime) -> bool:
        """
        Deactivate a rule, only if it is still eligible.

        Returns:
            False when another writer already triggered the rule
        """
        rows = self.store.update(
            PRICE_ALERTS,
            {
                "id": rule.id,
                "user_id": rule.user_id,
                "is_active": True,
                "triggered_at": None,
            },
            {"is_active": False, "triggered_at": format_timestamp(triggered_at)},
        )
        return len(rows) > 0

    def deactivate(self, user_id: str, rule_id: str) -> bool:
        """Switch a rule off without recording a trigger."""
        rows = self.store.update(
            PRICE_ALERTS,
            {"id": rule_id, "user_id": user_id},
            {"is_active": False},
        )
        return len(rows) > 0

    def delete(self, user_id: str, rule_id: str) -> int:
        """Delete a rule."""
        return self.store.delete(PRICE_ALERTS, {"id": rule_id, "user_id": user_id})


def row_to_settings(row: dict[str, Any]) -> Settings:
    """Convert store row to Settings."""
    defaults = Settings()
    return Settings(
        portfolio_updates=bool(row.get("portfolio_updates", defaults.portfolio_updates)),
        market_trends=bool(row.get("market_trends", defaults.market_trends)),
        price_alerts_enabled=bool(
            row.get("price_alerts_enabled", defaults.price_alerts_enabled)
        ),
        currency=row.get("currency") or defaults.currency,
    )


class SettingsRepository:
    """Store operations for per-user settings."""

    def __init__(self, store: RemoteStore):
        self.store = store

    def get(self, user_id: str) -> Optional[Settings]:
        """Get settings for a user, or None if never saved."""
        rows = self.store.select(USER_SETTINGS, {"user_id": user_id}, limit=1)
        if not rows:
            return None
        return row_to_settings(rows[0])

    def exists(self, user_id: str) -> bool:
        """Check whether a settings record exists for the user."""
        return self.store.exists(USER_SETTINGS, {"user_id": user_id})

    def create(self, user_id: str, settings: Settings) -> Settings:
        """Create the settings record for a user."""
        now = format_timestamp(utcnow())
        row = {"user_id": user_id, **asdict(settings), "created_at": now, "updated_at": now}
        rows = self.store.insert(USER_SETTINGS, row)
        return row_to_settings(rows[0])

    def update(self, user_id: str, settings: Settings) -> Settings:
        """Replace the stored preferences of a user."""
        patch = {**asdict(settings), "updated_at": format_timestamp(utcnow())}
        rows = self.store.update(USER_SETTINGS, {"user_id": user_id}, patch)
        if not rows:
            return self.create(user_id, settings)
        return row_to_settings(rows[0])

    def get_or_create(self, user_id: str) -> Settings:
        """Load settings, creating the default record on first session."""
        settings = self.get(user_id)
        if settings is None:
            settings = self.create(user_id, Settings())
        return settings
