"""
Data models for CoinSight notifications and price alerts.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

# Notification types
BUY = "buy"
SELL = "sell"
DELETE = "delete"
PRICE_ALERT = "price_alert"

PORTFOLIO_TYPES = (BUY, SELL, DELETE)
NOTIFICATION_TYPES = PORTFOLIO_TYPES + (PRICE_ALERT,)

# Alert conditions
ABOVE = "above"
BELOW = "below"

CONDITIONS = (ABOVE, BELOW)

MAX_NOTIFICATIONS = 50


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class Notification:
    """User-visible event in the notification log."""

    type: str  # "buy", "sell", "delete", "price_alert"
    coin: str
    message: str
    quantity: float = 0.0
    price: float = 0.0
    read: bool = False
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[str] = None
    user_id: Optional[str] = None

    def as_read(self) -> "Notification":
        """Copy of this notification with the read flag set."""
        return replace(self, read=True)


@dataclass
class AlertRule:
    """Stored price-alert rule."""

    user_id: str
    coin_id: str
    symbol: str
    coin_name: str
    target_price: float
    condition: str  # "above", "below"
    is_active: bool = True
    triggered_at: Optional[datetime] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_eligible(self) -> bool:
        """Whether the rule still takes part in evaluation."""
        return self.is_active and self.triggered_at is None


@dataclass
class Settings:
    """Per-user notification preferences."""

    portfolio_updates: bool = True
    market_trends: bool = False
    price_alerts_enabled: bool = True
    currency: str = "USD"
