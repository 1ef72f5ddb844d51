"""
Settings gate and push channel tests.
"""

import pytest

from coinsight.database.models import Settings
from coinsight.notifications.realtime import PushChannel
from coinsight.notifications.settings import SettingsGate


class TestSettingsGate:
    """Test event type gating."""

    def test_portfolio_updates_enabled(self):
        gate = SettingsGate(Settings(portfolio_updates=True))
        for event_type in ("buy", "sell", "delete"):
            assert gate.allows(event_type) is True

    def test_portfolio_updates_disabled(self):
        gate = SettingsGate(Settings(portfolio_updates=False))
        for event_type in ("buy", "sell", "delete"):
            assert gate.allows(event_type) is False

    def test_price_alerts_always_allowed(self):
        gate = SettingsGate(Settings(portfolio_updates=False, price_alerts_enabled=False))
        assert gate.allows("price_alert") is True

    def test_allows_while_loading(self):
        assert SettingsGate().allows("buy") is True

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            SettingsGate(Settings()).allows("transfer")

    def test_update_and_reset(self):
        gate = SettingsGate(Settings())
        gate.update(Settings(portfolio_updates=False))
        assert gate.allows("sell") is False

        gate.reset()
        assert gate.settings == Settings()
        assert gate.allows("sell") is True


class TestPushChannel:
    """Test in-process notification push."""

    def _row(self, user_id="u1", id="n1"):
        return {"id": id, "user_id": user_id, "type": "buy"}

    def test_delivers_to_matching_user(self):
        channel = PushChannel()
        u1, u2 = [], []
        channel.subscribe("u1", u1.append)
        channel.subscribe("u2", u2.append)

        assert channel.publish("notifications", self._row("u1")) == 1

        assert u1 == [self._row("u1")]
        assert u2 == []

    def test_ignores_other_tables(self):
        channel = PushChannel()
        received = []
        channel.subscribe("u1", received.append)

        assert channel.publish("price_alerts", self._row()) == 0
        assert received == []

    def test_unsubscribe(self):
        channel = PushChannel()
        received = []
        subscription = channel.subscribe("u1", received.append)

        subscription.unsubscribe()
        subscription.unsubscribe()

        assert subscription.active is False
        assert channel.subscriber_count() == 0
        channel.publish("notifications", self._row())
        assert received == []

    def test_failing_callback_does_not_block_others(self):
        channel = PushChannel()
        received = []

        def broken(row):
            raise RuntimeError("subscriber crashed")

        channel.subscribe("u1", broken)
        channel.subscribe("u1", received.append)

        assert channel.publish("notifications", self._row()) == 1
        assert len(received) == 1

    def test_subscriber_count(self):
        channel = PushChannel()
        channel.subscribe("u1", lambda row: None)
        channel.subscribe("u1", lambda row: None)
        channel.subscribe("u2", lambda row: None)

        assert channel.subscriber_count() == 3
        assert channel.subscriber_count("u1") == 2

    def test_retract_reaches_delete_handlers(self):
        channel = PushChannel()
        inserted, deleted = [], []
        channel.subscribe("u1", inserted.append, on_delete=deleted.append)
        channel.subscribe("u1", inserted.append)

        assert channel.retract("notifications", self._row()) == 1

        assert deleted == [self._row()]
        assert inserted == []
