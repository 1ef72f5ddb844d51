"""
Alert monitor: loads eligible rules, prices them and fires matches.
"""

import logging
from typing import Callable, Iterable, Mapping, Optional

from coinsight.data.fetcher import CoinPriceFetcher, PriceFetchError
from coinsight.database.models import AlertRule
from coinsight.database.repository import AlertRuleRepository
from coinsight.database.store import StoreError
from .engine import AlertEvaluator, AlertMatch
from .trigger import TriggerCoordinator, TriggerResult

logger = logging.getLogger(__name__)


class AlertMonitor:
    """Runs per-coin checks and full sweeps of a user's price alerts."""

    def __init__(
        self,
        rule_repo: AlertRuleRepository,
        coordinator: TriggerCoordinator,
        fetcher: Optional[CoinPriceFetcher] = None,
        evaluator: Optional[AlertEvaluator] = None,
        currency: str = "usd",
        on_triggered: Optional[Callable[[TriggerResult], None]] = None,
    ):
        """
        Initialize alert monitor.

        Args:
            rule_repo: Source of eligible rules
            coordinator: Fires matched rules
            fetcher: Price source for sweeps without an explicit price map
            evaluator: Rule predicate, defaults to AlertEvaluator()
            currency: Quote currency for fetched prices
            on_triggered: Called with each successful TriggerResult
        """
        self.rule_repo = rule_repo
        self.coordinator = coordinator
        self.fetcher = fetcher
        self.evaluator = evaluator or AlertEvaluator()
        self.currency = currency
        self.on_triggered = on_triggered

    def run_check(
        self, prices: Optional[Mapping[str, float]] = None
    ) -> list[TriggerResult]:
        """Sweep every user that has eligible rules."""
        try:
            user_ids = self.rule_repo.get_users_with_active_rules()
        except StoreError as e:
            logger.error(f"Error listing users with active alerts: {e}")
            return []

        results = []
        for user_id in user_ids:
            try:
                results.extend(self.check_user(user_id, prices))
            except Exception as e:
                logger.error(f"Error checking alerts for user {user_id}: {e}")
        return results

    def check_user(
        self,
        user_id: str,
        prices: Optional[Mapping[str, float]] = None,
    ) -> list[TriggerResult]:
        """
        Evaluate all of a user's eligible rules against a price map.

        Args:
            user_id: Rule owner
            prices: Current prices; fetched for the rules' coins when omitted

        Returns:
            One TriggerResult per matched rule
        """
        try:
            rules = self.rule_repo.get_active_rules(user_id)
        except StoreError as e:
            logger.error(f"Error fetching alerts for {user_id}: {e}")
            return []

        if not rules:
            logger.debug(f"No active alerts for {user_id}")
            return []

        if prices is None:
            prices = self._fetch_prices({rule.coin_id for rule in rules})
            if not prices:
                return []

        logger.debug(f"Checking {len(rules)} active alerts for {user_id}")
        return self._fire(self.evaluator.evaluate(rules, prices))

    def check_coin(self, user_id: str, coin_id: str, price: float) -> list[TriggerResult]:
        """Evaluate a user's rules for one coin after a single price update."""
        try:
            rules = self.rule_repo.get_active_rules(user_id, coin_id=coin_id)
        except StoreError as e:
            logger.error(f"Error fetching {coin_id} alerts for {user_id}: {e}")
            return []

        return self._fire(self.evaluator.evaluate_coin(rules, coin_id, price))

    def evaluate_new_rule(
        self, rule: AlertRule, price: Optional[float] = None
    ) -> list[TriggerResult]:
        """
        Check a freshly created rule once, so a condition that already holds
        fires without waiting for the next sweep.

        Args:
            rule: The stored rule
            price: Current price of rule.coin_id; fetched when omitted
        """
        if price is None:
            price = self._fetch_prices({rule.coin_id}).get(rule.coin_id)
            if price is None:
                logger.debug(f"No current price for {rule.coin_id}, alert {rule.id} waits")
                return []

        return self._fire(self.evaluator.evaluate_coin([rule], rule.coin_id, price))

    def _fetch_prices(self, coin_ids: set[str]) -> dict[str, float]:
        if self.fetcher is None:
            logger.warning("No price fetcher configured, skipping alert check")
            return {}
        try:
            prices = self.fetcher.get_prices(coin_ids, self.currency)
        except PriceFetchError as e:
            logger.warning(f"Failed to fetch prices for alert checking: {e}")
            return {}
        if not prices:
            logger.warning("No prices returned from API")
        return prices

    def _fire(self, matches: Iterable[AlertMatch]) -> list[TriggerResult]:
        results = []
        for match in matches:
            result = self.coordinator.trigger(match.rule, match.matched_price)
            results.append(result)
            if result.success and self.on_triggered is not None:
                self.on_triggered(result)

        triggered = sum(1 for r in results if r.success)
        if triggered:
            logger.info(f"{triggered} alerts triggered")
        return results
