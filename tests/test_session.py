"""
User session tests.
Covers login/logout, portfolio notifications and push merging.
"""

from unittest.mock import MagicMock

import pytest

from coinsight.data.legacy import NOTIFICATIONS_KEY, LegacyStorage
from coinsight.database.models import Notification, Settings
from coinsight.database.store import StoreError
from coinsight.notifications.migration import MigrationCoordinator
from coinsight.session import UserSession


@pytest.fixture
def session(notification_repo, settings_repo, channel):
    return UserSession(notification_repo, settings_repo, channel=channel)


class TestLoginLogout:
    """Test session lifecycle."""

    def test_login_loads_log_and_settings(
        self, session, notification_repo, settings_repo, make_notification
    ):
        notification_repo.create_many([make_notification(i) for i in range(3)])
        settings_repo.create("u1", Settings(portfolio_updates=False))

        session.login("u1")

        assert session.is_active
        assert [n.id for n in session.log.notifications] == ["n2", "n1", "n0"]
        assert session.settings.portfolio_updates is False

    def test_login_creates_default_settings(self, session, settings_repo):
        session.login("u1")

        assert session.settings == Settings()
        assert settings_repo.exists("u1")

    def test_login_subscribes(self, session, channel):
        session.login("u1")
        assert channel.subscriber_count("u1") == 1

    def test_logout(self, session, channel, make_notification):
        session.login("u1")
        session.log.append(make_notification(1))
        session.update_settings(Settings(portfolio_updates=False))

        session.logout()

        assert session.is_active is False
        assert len(session.log) == 0
        assert session.settings == Settings()
        assert channel.subscriber_count() == 0

    def test_switching_users(self, session, channel, notification_repo, make_notification):
        notification_repo.create(make_notification(1, user_id="u1"))
        notification_repo.create(make_notification(2, user_id="u2"))

        session.login("u1")
        session.login("u2")

        assert session.user_id == "u2"
        assert [n.id for n in session.log.notifications] == ["n2"]
        assert channel.subscriber_count("u1") == 0

    def test_login_runs_migration(self, notification_repo, settings_repo, tmp_path):
        legacy = LegacyStorage(str(tmp_path / "legacy.json"))
        legacy.set(
            NOTIFICATIONS_KEY,
            [{"type": "sell", "coin": "ETH", "quantity": 2, "price": 3000,
              "message": "You sold 2 ETH at $3,000", "timestamp": 1704103200000}],
        )
        migration = MigrationCoordinator(legacy, notification_repo, settings_repo)
        session = UserSession(notification_repo, settings_repo, migration=migration)

        session.login("u1")

        assert [n.coin for n in session.log.notifications] == ["ETH"]
        assert legacy.get(NOTIFICATIONS_KEY) is None

    def test_settings_load_failure(self, notification_repo):
        settings_repo = MagicMock()
        settings_repo.get_or_create.side_effect = StoreError("offline")
        session = UserSession(notification_repo, settings_repo)

        session.login("u1")

        assert session.settings is None
        assert session.notify("buy", "BTC", 1, 100) is not None

    def test_log_load_failure_keeps_writes_working(self, settings_repo):
        """Mutations still reach the store after the initial read failed."""
        notification_repo = MagicMock()
        notification_repo.get_recent.side_effect = StoreError("offline")
        notification_repo.mark_read.return_value = 1
        notification_repo.mark_all_read.return_value = 0
        notification_repo.delete_all.return_value = 0
        session = UserSession(notification_repo, settings_repo)

        session.login("u1")

        assert session.is_active
        assert session.mark_as_read("n1") is True
        notification_repo.mark_read.assert_called_once_with("u1", "n1")
        assert session.mark_all_as_read() is True
        notification_repo.mark_all_read.assert_called_once_with("u1")
        assert session.clear_all() is True
        notification_repo.delete_all.assert_called_once_with("u1")

    def test_reload_after_load_failure(self, settings_repo, make_notification):
        notification_repo = MagicMock()
        notification_repo.get_recent.side_effect = [
            StoreError("offline"),
            [make_notification(1)],
        ]
        session = UserSession(notification_repo, settings_repo)
        session.login("u1")
        assert len(session.log) == 0

        assert session.reload() is True
        assert [n.id for n in session.log.notifications] == ["n1"]

    def test_reload_requires_login(self, session):
        assert session.reload() is False


class TestNotify:
    """Test direct portfolio actions."""

    def test_notify_buy(self, session, notification_repo):
        session.login("u1")

        created = session.notify("buy", "BTC", 0.5, 60000)

        assert created.message == "You bought 0.5 BTC at $60,000"
        assert created.read is False
        assert [n.id for n in session.log.notifications] == [created.id]
        assert notification_repo.get_recent("u1")[0].id == created.id

    def test_push_echo_not_duplicated(self, session):
        """The pushed copy of a direct insert is merged, not appended twice."""
        session.login("u1")

        session.notify("sell", "ETH", 1, 3000)

        assert len(session.log) == 1
        assert session.unread_count() == 1

    def test_push_from_elsewhere(self, session, notification_repo):
        """Rows inserted by another writer arrive through the channel."""
        session.login("u1")

        notification_repo.create(
            Notification(user_id="u1", type="price_alert", coin="BTC", message="alert")
        )
        notification_repo.create(
            Notification(user_id="u2", type="price_alert", coin="BTC", message="other")
        )

        assert [n.message for n in session.log.notifications] == ["alert"]

    def test_gate_blocks_portfolio_updates(self, session, notification_repo):
        session.login("u1")
        session.update_settings(Settings(portfolio_updates=False))

        assert session.notify("delete", "DOGE") is None
        assert notification_repo.has_any("u1") is False

    def test_notify_requires_login(self, session):
        assert session.notify("buy", "BTC", 1, 100) is None

    def test_notify_store_failure(self, settings_repo):
        notification_repo = MagicMock()
        notification_repo.get_recent.return_value = []
        notification_repo.create.side_effect = StoreError("offline")
        session = UserSession(notification_repo, settings_repo)
        session.login("u1")

        assert session.notify("buy", "BTC", 1, 100) is None
        assert len(session.log) == 0

    def test_mark_and_clear(self, session, notification_repo):
        session.login("u1")
        first = session.notify("buy", "BTC", 1, 100)
        session.notify("buy", "ETH", 1, 100)

        assert session.mark_as_read(first.id) is True
        assert session.unread_count() == 1
        assert session.mark_all_as_read() is True
        assert session.unread_count() == 0
        assert session.clear_all() is True
        assert notification_repo.has_any("u1") is False
