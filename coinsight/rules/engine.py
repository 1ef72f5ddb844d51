"""
Price alert evaluation.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

from coinsight.database.models import ABOVE, BELOW, AlertRule

logger = logging.getLogger(__name__)

__all__ = ["AlertEvaluator", "AlertMatch", "condition_met"]


@dataclass
class AlertMatch:
    """A rule whose condition holds at the matched price."""

    rule: AlertRule
    matched_price: float

    def __iter__(self):
        return iter((self.rule, self.matched_price))


def _as_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return math.nan
    return number


def condition_met(condition: str, price: Any, target_price: Any) -> bool:
    """
    Check an alert condition. Both directions are inclusive.

    Args:
        condition: "above" or "below"
        price: Current market price
        target_price: Rule target

    Returns:
        True if the condition is satisfied
    """
    current = _as_number(price)
    target = _as_number(target_price)

    if math.isnan(current) or math.isnan(target):
        logger.warning(
            f"Invalid price values for comparison: price={price!r}, target={target_price!r}"
        )
        return False

    if condition == ABOVE:
        return current >= target
    elif condition == BELOW:
        return current <= target
    return False


class AlertEvaluator:
    """Decides which eligible rules are satisfied by current prices."""

    def evaluate(
        self,
        rules: Iterable[AlertRule],
        prices: Mapping[str, float],
    ) -> Iterator[AlertMatch]:
        """
        Evaluate rules against a price map.

        Rules that are inactive or already triggered are skipped, as are rules
        whose coin has no price this round.

        Args:
            rules: Rules to evaluate
            prices: Mapping of coin id to current price

        Yields:
            AlertMatch for each satisfied rule, in rule iteration order
        """
        for rule in rules:
            if not rule.is_eligible:
                continue

            price = prices.get(rule.coin_id)
            if price is None:
                logger.debug(f"No price data for {rule.coin_id}, skipping rule {rule.id}")
                continue

            if condition_met(rule.condition, price, rule.target_price):
                yield AlertMatch(rule=rule, matched_price=float(price))

    def evaluate_coin(
        self,
        rules: Iterable[AlertRule],
        coin_id: str,
        price: float,
    ) -> Iterator[AlertMatch]:
        """
        Evaluate rules for a single coin price update.

        Rules for other coins are ignored.
        """
        return self.evaluate(
            (rule for rule in rules if rule.coin_id == coin_id),
            {coin_id: price},
        )
