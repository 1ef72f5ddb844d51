"""
Settings gate: decides which event types may produce a notification.
"""

from typing import Optional

from coinsight.database.models import NOTIFICATION_TYPES, PORTFOLIO_TYPES, Settings


class SettingsGate:
    """Per-session view of a user's notification preferences."""

    def __init__(self, settings: Optional[Settings] = None):
        """
        Args:
            settings: Loaded settings, or None while they are still loading
        """
        self.settings = settings

    def allows(self, event_type: str) -> bool:
        """
        Check whether an event of this type may create a notification.

        Portfolio events follow the portfolio_updates toggle. Price alerts are
        always delivered. Until settings load, everything is allowed.

        Raises:
            ValueError: If event_type is unknown
        """
        if event_type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

        if event_type in PORTFOLIO_TYPES:
            if self.settings is None:
                return True
            return self.settings.portfolio_updates

        return True

    def update(self, settings: Optional[Settings]) -> None:
        """Swap in freshly loaded settings."""
        self.settings = settings

    def reset(self) -> None:
        """Fall back to default preferences at session end."""
        self.settings = Settings()
