"""
Turns a satisfied alert rule into a notification and retires the rule.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from coinsight.database.models import PRICE_ALERT, AlertRule, Notification, utcnow
from coinsight.database.repository import AlertRuleRepository, NotificationRepository
from coinsight.database.store import StoreError
from coinsight.notifications.messages import alert_message

logger = logging.getLogger(__name__)


class TriggerError(Enum):
    """Why a trigger attempt did not complete."""

    INSERT_FAILED = "insert_failed"
    MARK_FAILED = "mark_failed"
    ALREADY_TRIGGERED = "already_triggered"


@dataclass
class TriggerResult:
    """Result of a trigger attempt."""

    success: bool
    rule_id: Optional[str]
    notification: Optional[Notification] = None
    error: Optional[TriggerError] = None
    detail: Optional[str] = None


class TriggerCoordinator:
    """
    Runs the insert-notification then mark-triggered sequence for a rule.

    The rule is only marked once its notification exists. If marking fails
    the notification stays and the rule remains eligible, so the next
    evaluation pass may fire it again. The mark step is conditional on the
    rule still being eligible; losing that race means another evaluator
    already fired the rule, and the extra notification is withdrawn when
    suppress_duplicates is set.

    A withdrawn notification has already been pushed to subscribed sessions
    by its insert. Deleting it pushes a retraction that removes it from their
    logs; stores without a push channel rely on the next log load instead.
    """

    def __init__(
        self,
        notification_repo: NotificationRepository,
        rule_repo: AlertRuleRepository,
        suppress_duplicates: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.notification_repo = notification_repo
        self.rule_repo = rule_repo
        self.suppress_duplicates = suppress_duplicates
        self.clock = clock

    def trigger(self, rule: AlertRule, matched_price: float) -> TriggerResult:
        """
        Create the alert notification and deactivate the rule.

        Args:
            rule: Rule whose condition is satisfied
            matched_price: Price that satisfied it

        Returns:
            TriggerResult; store failures are reported, never raised
        """
        now = self.clock()
        notification = Notification(
            user_id=rule.user_id,
            type=PRICE_ALERT,
            coin=rule.symbol,
            quantity=0,
            price=float(matched_price),
            message=alert_message(rule, matched_price),
            read=False,
            created_at=now,
        )

        try:
            created = self.notification_repo.create(notification)
        except StoreError as e:
            logger.error(f"Failed to create notification for alert {rule.id}: {e}")
            return TriggerResult(
                success=False,
                rule_id=rule.id,
                error=TriggerError.INSERT_FAILED,
                detail=str(e),
            )

        try:
            marked = self.rule_repo.mark_triggered(rule, now)
        except StoreError as e:
            logger.warning(
                f"Notification {created.id} created but alert {rule.id} "
                f"could not be marked triggered; it may fire again: {e}"
            )
            return TriggerResult(
                success=False,
                rule_id=rule.id,
                notification=created,
                error=TriggerError.MARK_FAILED,
                detail=str(e),
            )

        if not marked:
            logger.info(f"Alert {rule.id} was already triggered by another process")
            if self.suppress_duplicates:
                self._withdraw(created)
            return TriggerResult(
                success=False,
                rule_id=rule.id,
                notification=None if self.suppress_duplicates else created,
                error=TriggerError.ALREADY_TRIGGERED,
            )

        rule.is_active = False
        rule.triggered_at = now
        logger.info(f"Alert {rule.id} triggered: {created.message}")
        return TriggerResult(success=True, rule_id=rule.id, notification=created)

    def _withdraw(self, notification: Notification) -> None:
        """Delete a duplicate alert notification."""
        try:
            self.notification_repo.delete(notification.user_id, notification.id)
        except StoreError as e:
            logger.error(f"Could not withdraw duplicate notification {notification.id}: {e}")
