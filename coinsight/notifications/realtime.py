"""
Push delivery of notification rows as they are inserted or deleted.
"""

import logging
from typing import Any, Callable, Optional

from coinsight.database.store import NOTIFICATIONS

logger = logging.getLogger(__name__)

RowCallback = Callable[[dict[str, Any]], None]


class Subscription:
    """Handle for one subscriber; call unsubscribe() when the session ends."""

    def __init__(
        self,
        channel: "PushChannel",
        user_id: str,
        callback: RowCallback,
        on_delete: Optional[RowCallback] = None,
    ):
        self.channel = channel
        self.user_id = user_id
        self.callback = callback
        self.on_delete = on_delete
        self.active = True

    def unsubscribe(self) -> None:
        """Stop delivery. Safe to call more than once."""
        if self.active:
            self.channel._remove(self)
            self.active = False


class PushChannel:
    """
    In-process broadcast of notification inserts and deletes, filtered by user.

    Delivery is best effort: nothing is buffered for absent subscribers, and
    a failing callback does not affect the publisher or other subscribers.
    """

    def __init__(self):
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self,
        user_id: str,
        callback: RowCallback,
        on_delete: Optional[RowCallback] = None,
    ) -> Subscription:
        """
        Deliver every notification row inserted for user_id to callback,
        and every deleted one to on_delete when given.
        """
        subscription = Subscription(self, user_id, callback, on_delete)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscribed to notifications for {user_id}")
        return subscription

    def publish(self, table: str, row: dict[str, Any]) -> int:
        """
        Fan an inserted row out to matching subscribers.

        Returns:
            Number of subscribers the row was delivered to
        """
        return self._deliver(table, row, lambda s: s.callback)

    def retract(self, table: str, row: dict[str, Any]) -> int:
        """
        Tell matching subscribers that a row was deleted.

        Returns:
            Number of subscribers the retraction was delivered to
        """
        return self._deliver(table, row, lambda s: s.on_delete)

    def subscriber_count(self, user_id: Optional[str] = None) -> int:
        """Active subscriptions, optionally for one user."""
        if user_id is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions if s.user_id == user_id)

    def _deliver(
        self,
        table: str,
        row: dict[str, Any],
        handler: Callable[[Subscription], Optional[RowCallback]],
    ) -> int:
        if table != NOTIFICATIONS:
            return 0

        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.user_id != row.get("user_id"):
                continue
            callback = handler(subscription)
            if callback is None:
                continue
            try:
                callback(dict(row))
                delivered += 1
            except Exception:
                logger.exception(f"Push delivery failed for notification {row.get('id')}")
        return delivered

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug(f"Unsubscribed from notifications for {subscription.user_id}")
