"""
Notification log tests.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from coinsight.database.store import StoreError
from coinsight.notifications.reconciler import NotificationLog


@pytest.fixture
def log(notification_repo):
    log = NotificationLog(notification_repo)
    log.load("u1")
    return log


class TestAppend:
    """Test merging entries into the log."""

    def test_append_is_idempotent(self, log, make_notification):
        """The same id arriving twice appears once."""
        notification = make_notification(1)

        assert log.append(notification) is True
        assert log.append(notification) is False
        assert len(log) == 1

    def test_push_echo_after_direct_insert(self, log, make_notification):
        direct = make_notification(1)
        echo = make_notification(1, message="same row, pushed copy")

        log.append(direct)
        log.append(echo)

        assert [n.message for n in log.notifications] == [direct.message]

    def test_capacity_keeps_most_recent(self, notification_repo, make_notification):
        """The 51st append evicts the earliest appended entry."""
        log = NotificationLog(notification_repo, capacity=50)
        for i in range(51):
            log.append(make_notification(i))

        assert len(log) == 50
        assert "n0" not in log
        assert "n50" in log

    def test_notifications_sorted_newest_first(self, log, make_notification):
        log.append(make_notification(3))
        log.append(make_notification(1))
        log.append(make_notification(2))

        assert [n.id for n in log.notifications] == ["n3", "n2", "n1"]

    def test_equal_timestamps_keep_append_order(self, log, make_notification, base_time):
        log.append(make_notification(1, created_at=base_time))
        log.append(make_notification(2, created_at=base_time))

        assert [n.id for n in log.notifications] == ["n2", "n1"]

    def test_latest(self, log, make_notification):
        for i in range(10):
            log.append(make_notification(i))

        assert [n.id for n in log.latest(3)] == ["n9", "n8", "n7"]

    def test_remove(self, log, make_notification):
        log.append(make_notification(1))
        log.append(make_notification(2))

        assert log.remove("n1") is True
        assert log.remove("n1") is False
        assert [n.id for n in log.notifications] == ["n2"]

    def test_invalid_capacity(self, notification_repo):
        with pytest.raises(ValueError):
            NotificationLog(notification_repo, capacity=0)


class TestLoad:
    """Test loading from the store."""

    def test_load_recent(self, notification_repo, make_notification):
        notification_repo.create_many([make_notification(i) for i in range(60)])
        log = NotificationLog(notification_repo)

        assert log.load("u1") is True

        assert len(log) == 50
        assert log.notifications[0].id == "n59"
        assert "n9" not in log

    def test_load_failure_keeps_entries_and_binds_user(self, make_notification):
        """A failed read still binds the user so later writes reach the store."""
        repo = MagicMock()
        repo.get_recent.side_effect = StoreError("offline")
        log = NotificationLog(repo)
        log.append(make_notification(1))

        assert log.load("u1") is False
        assert "n1" in log
        assert log.user_id == "u1"

        repo.mark_read.return_value = 1
        assert log.mark_read("n1") is True
        repo.mark_read.assert_called_once_with("u1", "n1")
        assert log.get("n1").read is True

    def test_reset(self, log, make_notification):
        log.append(make_notification(1))
        log.reset()

        assert len(log) == 0
        assert log.user_id is None


class TestMutations:
    """Test write-then-reflect operations."""

    def test_mark_read(self, log, notification_repo, make_notification):
        log.append(notification_repo.create(make_notification(1)))
        log.append(notification_repo.create(make_notification(2)))

        assert log.mark_read("n1") is True

        assert log.get("n1").read is True
        assert log.get("n2").read is False
        assert log.unread_count() == 1
        stored = {n.id: n.read for n in notification_repo.get_recent("u1")}
        assert stored == {"n1": True, "n2": False}

    def test_mark_read_missing_row(self, log, notification_repo, make_notification):
        """An id the store does not hold is reported, not marked locally."""
        log.append(make_notification(1))

        assert log.mark_read("n1") is False
        assert log.mark_read("missing") is False
        assert log.get("n1").read is False

    def test_mark_all_read(self, log, notification_repo, make_notification):
        for i in range(3):
            log.append(notification_repo.create(make_notification(i)))

        assert log.mark_all_read() is True

        assert log.unread_count() == 0
        assert all(n.read for n in notification_repo.get_recent("u1"))

    def test_clear(self, log, notification_repo, make_notification):
        for i in range(3):
            log.append(notification_repo.create(make_notification(i)))

        assert log.clear() is True

        assert len(log) == 0
        assert notification_repo.has_any("u1") is False

    def test_store_failure_leaves_log_unchanged(self, make_notification, base_time):
        """Nothing changes locally if the store write fails."""
        repo = MagicMock()
        repo.get_recent.return_value = [
            make_notification(1),
            make_notification(2, created_at=base_time - timedelta(hours=1)),
        ]
        repo.mark_read.side_effect = StoreError("offline")
        repo.mark_all_read.side_effect = StoreError("offline")
        repo.delete_all.side_effect = StoreError("offline")
        log = NotificationLog(repo)
        log.load("u1")

        assert log.mark_read("n1") is False
        assert log.mark_all_read() is False
        assert log.clear() is False

        assert len(log) == 2
        assert log.unread_count() == 2

    def test_mutations_need_a_user(self, notification_repo):
        log = NotificationLog(notification_repo)

        assert log.mark_read("n1") is False
        assert log.mark_all_read() is False
        assert log.clear() is False

    def test_unread_count(self, log, make_notification):
        log.append(make_notification(1))
        log.append(make_notification(2, read=True))
        log.append(make_notification(3))

        assert log.unread_count() == 2
