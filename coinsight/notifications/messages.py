"""
Notification message text.
"""

from coinsight.database.models import ABOVE, BUY, DELETE, SELL, AlertRule


def format_price(price: float) -> str:
    """Format a USD amount with separators and at most two decimals."""
    text = f"{float(price):,.2f}".rstrip("0").rstrip(".")
    if text.startswith("-"):
        return f"-${text[1:]}"
    return f"${text}"


def format_quantity(quantity: float) -> str:
    """Render a quantity with up to eight decimals, trailing zeros dropped."""
    return f"{float(quantity):.8f}".rstrip("0").rstrip(".")


def portfolio_message(type: str, coin: str, quantity: float, price: float) -> str:
    """Message for a direct portfolio action."""
    if type == BUY:
        return f"You bought {format_quantity(quantity)} {coin} at {format_price(price)}"
    elif type == SELL:
        return f"You sold {format_quantity(quantity)} {coin} at {format_price(price)}"
    elif type == DELETE:
        return f"You removed {coin} from portfolio"
    return ""


def alert_message(rule: AlertRule, matched_price: float) -> str:
    """Message for a triggered price alert."""
    direction = "risen above" if rule.condition == ABOVE else "fallen below"
    return (
        f"{rule.coin_name} ({rule.symbol}) has {direction} "
        f"${float(rule.target_price):.2f}! Current price: ${float(matched_price):.2f}"
    )
