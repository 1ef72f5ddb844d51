"""
Notification message formatting tests.
"""

from coinsight.database.models import AlertRule
from coinsight.notifications.messages import (
    alert_message,
    format_price,
    format_quantity,
    portfolio_message,
)


class TestFormatting:
    """Test price and quantity rendering."""

    def test_format_price(self):
        assert format_price(50000) == "$50,000"
        assert format_price(1234.5) == "$1,234.5"
        assert format_price(0.25) == "$0.25"
        assert format_price(0) == "$0"

    def test_format_negative_price(self):
        assert format_price(-12.5) == "-$12.5"

    def test_format_quantity(self):
        assert format_quantity(1) == "1"
        assert format_quantity(0.5) == "0.5"
        assert format_quantity(0.00012345) == "0.00012345"


class TestPortfolioMessage:
    """Test messages for direct portfolio actions."""

    def test_buy(self):
        assert portfolio_message("buy", "BTC", 0.5, 60000) == "You bought 0.5 BTC at $60,000"

    def test_sell(self):
        assert portfolio_message("sell", "ETH", 2, 3000.5) == "You sold 2 ETH at $3,000.5"

    def test_delete(self):
        assert portfolio_message("delete", "DOGE", 0, 0) == "You removed DOGE from portfolio"


class TestAlertMessage:
    """Test triggered alert message."""

    def test_above(self, btc_rule):
        message = alert_message(btc_rule, 50001)
        assert message == (
            "Bitcoin (BTC) has risen above $50000.00! Current price: $50001.00"
        )

    def test_below(self):
        rule = AlertRule(
            user_id="u1",
            coin_id="ethereum",
            symbol="ETH",
            coin_name="Ethereum",
            target_price=2000,
            condition="below",
        )
        assert "has fallen below $2000.00" in alert_message(rule, 1999.5)
        assert "Current price: $1999.50" in alert_message(rule, 1999.5)
