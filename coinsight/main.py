"""
Main application entry point.
"""

import logging
import time
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

from coinsight.config import AppConfig, StoreConfig
from coinsight.data.fetcher import CoinPriceFetcher
from coinsight.data.legacy import LegacyStorage
from coinsight.database.connection import Database
from coinsight.database.repository import (
    AlertRuleRepository,
    NotificationRepository,
    SettingsRepository,
)
from coinsight.database.rest import RestStore
from coinsight.database.store import RemoteStore, SQLiteStore
from coinsight.notifications.migration import MigrationCoordinator
from coinsight.notifications.realtime import PushChannel
from coinsight.rules.monitor import AlertMonitor
from coinsight.rules.trigger import TriggerCoordinator, TriggerResult
from coinsight.session import UserSession

logger = logging.getLogger(__name__)


def create_store(
    config: StoreConfig, channel: Optional[PushChannel] = None
) -> RemoteStore:
    """Build the configured record store."""
    if config.backend == "rest":
        return RestStore(config.url, api_key=config.api_key, timeout=config.timeout)

    db = Database(config.path)
    db.initialize()
    return SQLiteStore(db, channel=channel)


class CoinsightApp:
    """Main CoinSight application."""

    def __init__(self, config: AppConfig, store: Optional[RemoteStore] = None):
        """
        Initialize CoinSight app.

        Args:
            config: Loaded application config
            store: Record store; built from config when omitted
        """
        self.config = config
        self.channel = PushChannel()
        self.store = store or create_store(config.store, channel=self.channel)

        # Initialize repositories
        self.notification_repo = NotificationRepository(self.store)
        self.rule_repo = AlertRuleRepository(self.store)
        self.settings_repo = SettingsRepository(self.store)

        # Initialize services
        self.fetcher = CoinPriceFetcher(
            base_url=config.prices.base_url,
            timeout=config.prices.timeout,
            max_retries=config.advanced.max_retries,
            retry_delay=config.advanced.retry_delay_seconds,
        )
        self.coordinator = TriggerCoordinator(
            self.notification_repo,
            self.rule_repo,
            suppress_duplicates=config.alerts.suppress_duplicate_triggers,
        )
        self.monitor = AlertMonitor(
            self.rule_repo,
            self.coordinator,
            fetcher=self.fetcher,
            currency=config.alerts.currency,
            on_triggered=self._log_trigger,
        )

    def create_session(self) -> UserSession:
        """A session bound to this app's store, legacy snapshot and channel."""
        migration = MigrationCoordinator(
            LegacyStorage(self.config.legacy.path),
            self.notification_repo,
            self.settings_repo,
            capacity=self.config.notifications.max_notifications,
        )
        return UserSession(
            self.notification_repo,
            self.settings_repo,
            migration=migration,
            channel=self.channel,
            capacity=self.config.notifications.max_notifications,
        )

    def run_check(
        self,
        user_id: Optional[str] = None,
        prices: Optional[Mapping[str, float]] = None,
    ) -> list[TriggerResult]:
        """Run one alert check for a user, or for all users with active alerts."""
        if user_id is not None:
            return self.monitor.check_user(user_id, prices)
        return self.monitor.run_check(prices)

    def run_forever(self, user_id: Optional[str] = None) -> None:
        """Repeat run_check on the configured interval until interrupted."""
        interval = self.config.alerts.check_interval_seconds
        logger.info(f"Alert monitor started, checking every {interval} seconds")
        try:
            while True:
                self.run_check(user_id)
                time.sleep(interval)
        except KeyboardInterrupt:
            logger.info("Alert monitor stopped")

    def _log_trigger(self, result: TriggerResult) -> None:
        logger.info(f"Alert {result.rule_id} -> notification {result.notification.id}")


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="CoinSight Price Alert Service")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--user", help="Only check alerts of this user")
    parser.add_argument(
        "--loop", action="store_true", help="Keep checking on the configured interval"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--dry-run", action="store_true", help="Load config and exit without checking"
    )

    args = parser.parse_args()

    # Load config
    from coinsight.config import load_config

    config = load_config(args.config)

    # Setup logging
    log_level = logging.DEBUG if args.debug else config.advanced.log_level.upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = CoinsightApp(config)

    if args.dry_run:
        logger.info("Dry run mode - no alerts will be checked")
    elif args.loop:
        app.run_forever(args.user)
    else:
        results = app.run_check(args.user)
        logger.info(
            f"Check complete: {sum(1 for r in results if r.success)} alerts triggered"
        )


if __name__ == "__main__":
    main()
