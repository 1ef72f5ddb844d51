"""
CLI commands for CoinSight.
"""

import argparse
from dataclasses import replace
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from coinsight.config import AppConfig, load_config
from coinsight.database.models import CONDITIONS, PORTFOLIO_TYPES, AlertRule, Settings
from coinsight.main import CoinsightApp


def add_alert(
    app: CoinsightApp,
    user_id: str,
    coin_id: str,
    symbol: str,
    coin_name: str,
    target_price: float,
    condition: str,
) -> AlertRule:
    """Create a new price alert."""
    rule = AlertRule(
        user_id=user_id,
        coin_id=coin_id,
        symbol=symbol.upper(),
        coin_name=coin_name,
        target_price=target_price,
        condition=condition,
    )
    return app.rule_repo.create(rule)


def delete_alert(app: CoinsightApp, user_id: str, rule_id: str) -> bool:
    """Remove a price alert. Returns False if the user has no such alert."""
    return app.rule_repo.delete(user_id, rule_id) > 0


def disable_alert(app: CoinsightApp, user_id: str, rule_id: str) -> bool:
    """Switch a price alert off, keeping it in the list."""
    return app.rule_repo.deactivate(user_id, rule_id)


def parse_prices(pairs: list[str]) -> dict[str, float]:
    """
    Parse COIN=PRICE pairs.

    Raises:
        ValueError: If a pair is malformed
    """
    prices = {}
    for pair in pairs:
        coin_id, sep, value = pair.partition("=")
        if not sep or not coin_id:
            raise ValueError(f"Expected COIN=PRICE, got: {pair}")
        prices[coin_id.strip()] = float(value)
    return prices


def parse_switch(value: Optional[str]) -> Optional[bool]:
    """Parse an on/off flag value."""
    if value is None:
        return None
    lowered = value.lower()
    if lowered in ("on", "true", "yes", "1"):
        return True
    if lowered in ("off", "false", "no", "0"):
        return False
    raise argparse.ArgumentTypeError(f"Expected on/off, got: {value}")


def apply_settings_changes(
    settings: Settings,
    portfolio_updates: Optional[bool] = None,
    market_trends: Optional[bool] = None,
    price_alerts: Optional[bool] = None,
    currency: Optional[str] = None,
) -> Settings:
    """Return settings with the given fields replaced."""
    changes = {}
    if portfolio_updates is not None:
        changes["portfolio_updates"] = portfolio_updates
    if market_trends is not None:
        changes["market_trends"] = market_trends
    if price_alerts is not None:
        changes["price_alerts_enabled"] = price_alerts
    if currency:
        changes["currency"] = currency.upper()
    return replace(settings, **changes)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CoinSight CLI")
    parser.add_argument("--config", help="Path to config file")
    parser.add_argument("--db", help="SQLite database path (overrides config)")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Alert commands
    alerts_parser = subparsers.add_parser("alerts", help="Price alert management")
    alerts_subparsers = alerts_parser.add_subparsers(dest="action")

    add_alert_parser = alerts_subparsers.add_parser("add", help="Add price alert")
    add_alert_parser.add_argument("--user", required=True, help="User ID")
    add_alert_parser.add_argument("--coin-id", required=True, help="Coin ID, e.g. bitcoin")
    add_alert_parser.add_argument("--symbol", required=True, help="Coin symbol, e.g. BTC")
    add_alert_parser.add_argument("--name", required=True, help="Coin name")
    add_alert_parser.add_argument("--target", type=float, required=True, help="Target price")
    add_alert_parser.add_argument("--condition", required=True, choices=CONDITIONS)
    add_alert_parser.add_argument(
        "--price", type=float, help="Current price to check against (default: fetch)"
    )
    add_alert_parser.add_argument(
        "--skip-check", action="store_true", help="Do not check the new alert now"
    )

    list_alerts_parser = alerts_subparsers.add_parser("list", help="List alerts")
    list_alerts_parser.add_argument("--user", required=True, help="User ID")

    delete_alert_parser = alerts_subparsers.add_parser("delete", help="Delete alert")
    delete_alert_parser.add_argument("--user", required=True, help="User ID")
    delete_alert_parser.add_argument("--id", required=True, help="Alert ID")

    disable_alert_parser = alerts_subparsers.add_parser("disable", help="Disable alert")
    disable_alert_parser.add_argument("--user", required=True, help="User ID")
    disable_alert_parser.add_argument("--id", required=True, help="Alert ID")

    check_parser = alerts_subparsers.add_parser("check", help="Check alerts now")
    check_parser.add_argument("--user", help="User ID (default: all users)")
    check_parser.add_argument(
        "--price",
        action="append",
        default=[],
        metavar="COIN=PRICE",
        help="Use this price instead of fetching (repeatable)",
    )

    # Notification commands
    notif_parser = subparsers.add_parser("notifications", help="Notification log")
    notif_subparsers = notif_parser.add_subparsers(dest="action")

    list_notif_parser = notif_subparsers.add_parser("list", help="Show notifications")
    list_notif_parser.add_argument("--user", required=True, help="User ID")
    list_notif_parser.add_argument("--limit", type=int, help="Show only the newest N")

    add_notif_parser = notif_subparsers.add_parser("add", help="Record portfolio action")
    add_notif_parser.add_argument("--user", required=True, help="User ID")
    add_notif_parser.add_argument("--type", required=True, choices=PORTFOLIO_TYPES)
    add_notif_parser.add_argument("--coin", required=True, help="Coin symbol")
    add_notif_parser.add_argument("--quantity", type=float, default=0)
    add_notif_parser.add_argument("--price", type=float, default=0)

    read_parser = notif_subparsers.add_parser("read", help="Mark one as read")
    read_parser.add_argument("--user", required=True, help="User ID")
    read_parser.add_argument("--id", required=True, help="Notification ID")

    read_all_parser = notif_subparsers.add_parser("read-all", help="Mark all as read")
    read_all_parser.add_argument("--user", required=True, help="User ID")

    clear_parser = notif_subparsers.add_parser("clear", help="Delete all")
    clear_parser.add_argument("--user", required=True, help="User ID")

    # Migration
    migrate_parser = subparsers.add_parser("migrate", help="Import legacy snapshot")
    migrate_parser.add_argument("--user", required=True, help="User ID")

    # Settings commands
    settings_parser = subparsers.add_parser("settings", help="Notification settings")
    settings_subparsers = settings_parser.add_subparsers(dest="action")

    show_settings_parser = settings_subparsers.add_parser("show", help="Show settings")
    show_settings_parser.add_argument("--user", required=True, help="User ID")

    set_settings_parser = settings_subparsers.add_parser("set", help="Change settings")
    set_settings_parser.add_argument("--user", required=True, help="User ID")
    set_settings_parser.add_argument("--portfolio-updates", type=parse_switch)
    set_settings_parser.add_argument("--market-trends", type=parse_switch)
    set_settings_parser.add_argument("--price-alerts", type=parse_switch)
    set_settings_parser.add_argument("--currency")

    # DB commands
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="action")
    db_subparsers.add_parser("init", help="Create tables")

    return parser


def main():
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    config = load_config(args.config) if args.config else AppConfig()
    if args.db:
        config.store = replace(config.store, backend="sqlite", path=args.db)

    app = CoinsightApp(config)

    # Handle commands
    if args.command == "alerts":
        if args.action == "add":
            rule = add_alert(
                app,
                user_id=args.user,
                coin_id=args.coin_id,
                symbol=args.symbol,
                coin_name=args.name,
                target_price=args.target,
                condition=args.condition,
            )
            print(f"Created alert with ID: {rule.id}")
            if not args.skip_check:
                for result in app.monitor.evaluate_new_rule(rule, args.price):
                    if result.success:
                        print(f"Triggered immediately: {result.notification.message}")
        elif args.action == "list":
            for rule in app.rule_repo.get_user_rules(args.user):
                if rule.triggered_at is not None:
                    status = f"triggered {rule.triggered_at}"
                else:
                    status = "active" if rule.is_active else "disabled"
                print(
                    f"{rule.id}: {rule.symbol} {rule.condition} "
                    f"${rule.target_price:.2f} ({status})"
                )
        elif args.action == "delete":
            print("Deleted" if delete_alert(app, args.user, args.id) else "Alert not found")
        elif args.action == "disable":
            print("Disabled" if disable_alert(app, args.user, args.id) else "Alert not found")
        elif args.action == "check":
            try:
                prices = parse_prices(args.price) if args.price else None
            except ValueError as e:
                parser.error(str(e))
            results = app.run_check(args.user, prices)
            for result in results:
                if result.success:
                    print(f"Triggered {result.rule_id}: {result.notification.message}")
                else:
                    print(f"Failed {result.rule_id}: {result.error.value}")
            print(f"{sum(1 for r in results if r.success)} alerts triggered")

    elif args.command == "notifications":
        session = app.create_session()
        session.login(args.user)
        if args.action == "list":
            entries = session.log.notifications
            if args.limit:
                entries = session.log.latest(args.limit)
            for n in entries:
                marker = " " if n.read else "*"
                print(f"{marker} {n.created_at:%Y-%m-%d %H:%M} [{n.type}] {n.message} ({n.id})")
            print(f"{session.unread_count()} unread")
        elif args.action == "add":
            created = session.notify(args.type, args.coin.upper(), args.quantity, args.price)
            print(f"Created notification: {created.id}" if created else "Not recorded")
        elif args.action == "read":
            print("Marked as read" if session.mark_as_read(args.id) else "Failed")
        elif args.action == "read-all":
            print("Marked all as read" if session.mark_all_as_read() else "Failed")
        elif args.action == "clear":
            print("Cleared" if session.clear_all() else "Failed")
        session.logout()

    elif args.command == "migrate":
        migration = app.create_session().migration
        settings_ok = migration.migrate_settings_if_needed(args.user)
        notifications_ok = migration.migrate_if_needed(args.user)
        print(f"Settings: {'ok' if settings_ok else 'failed'}")
        print(f"Notifications: {'ok' if notifications_ok else 'failed'}")

    elif args.command == "settings":
        settings = app.settings_repo.get_or_create(args.user)
        if args.action == "set":
            settings = app.settings_repo.update(
                args.user,
                apply_settings_changes(
                    settings,
                    portfolio_updates=args.portfolio_updates,
                    market_trends=args.market_trends,
                    price_alerts=args.price_alerts,
                    currency=args.currency,
                ),
            )
        print(f"Portfolio updates: {'on' if settings.portfolio_updates else 'off'}")
        print(f"Market trends: {'on' if settings.market_trends else 'off'}")
        print(f"Price alerts: {'on' if settings.price_alerts_enabled else 'off'}")
        print(f"Currency: {settings.currency}")

    elif args.command == "db":
        if args.action == "init":
            print("Database initialized")

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
