"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone

import pytest

from coinsight.database.connection import Database
from coinsight.database.models import AlertRule, Notification
from coinsight.database.repository import (
    AlertRuleRepository,
    NotificationRepository,
    SettingsRepository,
)
from coinsight.database.store import SQLiteStore
from coinsight.notifications.realtime import PushChannel


@pytest.fixture
def db():
    """In-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def channel():
    """Push channel fed by the store."""
    return PushChannel()


@pytest.fixture
def store(db, channel):
    """SQLite store publishing inserts to the channel."""
    return SQLiteStore(db, channel=channel)


@pytest.fixture
def notification_repo(store):
    return NotificationRepository(store)


@pytest.fixture
def rule_repo(store):
    return AlertRuleRepository(store)


@pytest.fixture
def settings_repo(store):
    return SettingsRepository(store)


@pytest.fixture
def base_time():
    """Fixed reference time."""
    return datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_notification(base_time):
    """Factory for notifications with increasing creation times."""

    def _make(index: int, user_id: str = "u1", **kwargs) -> Notification:
        fields = {
            "id": f"n{index}",
            "user_id": user_id,
            "type": "buy",
            "coin": "BTC",
            "quantity": 1,
            "price": 50000,
            "message": f"You bought 1 BTC at $50,000 (#{index})",
            "created_at": base_time + timedelta(minutes=index),
        }
        fields.update(kwargs)
        return Notification(**fields)

    return _make


@pytest.fixture
def btc_rule():
    """Active above-50000 BTC rule."""
    return AlertRule(
        id="r-btc",
        user_id="u1",
        coin_id="bitcoin",
        symbol="BTC",
        coin_name="Bitcoin",
        target_price=50000,
        condition="above",
    )


@pytest.fixture
def sample_price_response():
    """Sample CoinGecko simple/price response."""
    return {
        "bitcoin": {"usd": 50001.0},
        "ethereum": {"usd": 2999.5},
    }
