"""Command-line entry point.

Usage:
    showtime-monitor monitor [-c config.json] [-d amc-monitor.db] [-v]
    showtime-monitor test-telegram
    showtime-monitor status
    showtime-monitor watchlist add "Tron: Ares"
    showtime-monitor logs --all -n 3

``monitor`` is meant to be run from cron; runs must not overlap.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from showtime_monitor import __version__
from showtime_monitor.bot.channel import TelegramChannel
from showtime_monitor.catalog.client import CatalogClient
from showtime_monitor.config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_DATABASE_PATH,
    AppConfig,
    load_config,
    resolve_database_path,
    template_config,
)
from showtime_monitor.errors import MonitorError
from showtime_monitor.monitor import ShowtimeMonitor
from showtime_monitor.runlog import RunLogHandler, setup_logging
from showtime_monitor.store.database import ShowtimeDatabase

logger = logging.getLogger(__name__)

TELEGRAM_SETUP_GUIDE = """\
Telegram Bot Setup Guide
========================

1. Open Telegram and message @BotFather
2. Send /newbot to create a new bot
3. Follow the prompts to name your bot
4. Copy the bot token (looks like: 123456789:ABCdefGHIjklMNOpqrsTUVwxyz)
5. Start a chat with your new bot and send it any message
6. Visit: https://api.telegram.org/bot<YOUR_BOT_TOKEN>/getUpdates
7. Look for "chat":{"id": in the response - that's your chat ID
8. Put both values in config.json (see `create-config`) or set
   TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID
"""


def _database_path(args: argparse.Namespace, config: AppConfig | None = None) -> str:
    if getattr(args, "database", None):
        return args.database
    if config is not None:
        return config.database_path
    return resolve_database_path(getattr(args, "config", None))


def _build_monitor(
    config: AppConfig, db: ShowtimeDatabase
) -> tuple[ShowtimeMonitor, CatalogClient, TelegramChannel]:
    catalog = CatalogClient(config.amc_api_key, timeout=config.http_timeout_seconds)
    channel = TelegramChannel(config.telegram_bot_token, config.telegram_chat_id)
    return ShowtimeMonitor(config, db, catalog, channel), catalog, channel


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


async def _run_monitor(config: AppConfig, db: ShowtimeDatabase) -> None:
    monitor, catalog, channel = _build_monitor(config, db)
    try:
        async with channel:
            if not await channel.test_connection():
                raise MonitorError("Failed to connect to Telegram bot")
            summary = await monitor.run()
    finally:
        catalog.close()
    logger.info(
        "Run finished: %d matched movies, %d new showtimes, %d messages, %d commands",
        summary.matched_titles,
        summary.new_showtimes,
        summary.messages_sent,
        summary.commands_processed,
    )


def cmd_monitor(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    db = ShowtimeDatabase.open(_database_path(args, config))
    run_log = RunLogHandler().install()
    try:
        logger.info("Starting monitor run %s", run_log.run_id)
        asyncio.run(_run_monitor(config, db))
        logger.info("Monitor run completed successfully")
        return 0
    except MonitorError as e:
        logger.error("Error during check: %s", e)
        raise
    finally:
        run_log.uninstall()
        run_log.flush_to(db)
        db.close()


async def _test_telegram(config: AppConfig) -> None:
    channel = TelegramChannel(config.telegram_bot_token, config.telegram_chat_id)
    async with channel:
        if not await channel.test_connection():
            raise MonitorError("Failed to connect to Telegram bot")
        await channel.send_test_message()


def cmd_test_telegram(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    print("Testing Telegram bot connection...")
    asyncio.run(_test_telegram(config))
    print("Test message sent successfully")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    db = ShowtimeDatabase.open(_database_path(args, config))
    monitor, catalog, _ = _build_monitor(config, db)
    try:
        status = asyncio.run(monitor.status())
    finally:
        catalog.close()
        db.close()

    print("AMC Showtime Monitor Status")
    print("===========================")
    print(f"Theatre: {status.location or 'Not found'}")
    print(f"Location: {status.location_text or 'N/A'}")
    print(f"Watchlist: {len(status.watchlist)} movies")
    for movie in status.watchlist:
        print(f"  - {movie}")
    print(f"Tracked showtimes: {status.total_showtimes}")
    print(f"Unnotified showtimes: {status.unnotified_showtimes}")
    return 0


def cmd_watchlist(args: argparse.Namespace) -> int:
    db = ShowtimeDatabase.open(_database_path(args))
    try:
        if args.action == "list":
            movies = db.get_watchlist()
            if not movies:
                print("Watchlist is empty")
            for i, movie in enumerate(movies, 1):
                print(f"{i}. {movie}")
            return 0

        name = " ".join(args.name).strip()
        if not name:
            print(f"Usage: showtime-monitor watchlist {args.action} <movie name>", file=sys.stderr)
            return 1
        if args.action == "add":
            if db.add_to_watchlist(name):
                print(f"Added '{name}' to watchlist")
            else:
                print(f"'{name}' is already in the watchlist")
            return 0
        if db.remove_from_watchlist(name):
            print(f"Removed '{name}' from watchlist")
            return 0
        print(f"'{name}' not found in watchlist", file=sys.stderr)
        return 1
    finally:
        db.close()


def cmd_create_config(args: argparse.Namespace) -> int:
    path = Path(args.path)
    if path.exists():
        print(f"{path} already exists", file=sys.stderr)
        return 1
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(template_config(), indent=2) + "\n", encoding="utf-8")
    print(f"Created {path}")
    print("Edit it with your settings, then run `showtime-monitor telegram-setup`")
    return 0


def cmd_telegram_setup(args: argparse.Namespace) -> int:
    print(TELEGRAM_SETUP_GUIDE)
    return 0


def cmd_reset_db(args: argparse.Namespace) -> int:
    path = Path(_database_path(args))
    if not path.exists():
        print(f"Database file {path} doesn't exist - nothing to reset")
        return 0

    if not args.yes:
        print("This will delete all tracked showtimes, the watchlist and notification history.")
        print("You will be notified about every existing showtime again.")
        answer = input("Are you sure you want to reset the database? (y/N): ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Database reset cancelled")
            return 0

    for suffix in ("", "-wal", "-shm"):
        Path(f"{path}{suffix}").unlink(missing_ok=True)
    print("Database reset successfully")
    return 0


def _print_log(entry) -> None:
    movie = f" [{entry.title}]" if entry.title else ""
    print(f"{entry.level}: {entry.message}{movie}")


def cmd_logs(args: argparse.Namespace) -> int:
    db = ShowtimeDatabase.open(_database_path(args))
    try:
        count = args.lines if args.all else 1
        run_ids = db.get_recent_run_ids(count)
        if not run_ids:
            print("No logs found")
            return 0
        # oldest run first so the latest ends up at the bottom
        for run_id in reversed(run_ids):
            entries = db.get_logs_by_run_id(run_id)
            if not entries:
                continue
            print(f"\n=== Run {run_id} at {entries[0].timestamp:%Y-%m-%d %H:%M:%S} UTC ===")
            for entry in entries:
                _print_log(entry)
        return 0
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="showtime-monitor",
        description="Watch AMC showtimes for a list of movies and notify via Telegram.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    def _config_opt(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-c", "--config", default=str(DEFAULT_CONFIG_PATH),
            help="Path to config file (default: %(default)s)",
        )

    def _db_opt(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-d", "--database", default=None,
            help=f"Path to database file (default: config or {DEFAULT_DATABASE_PATH})",
        )

    p = sub.add_parser("monitor", help="Check showtimes once and process Telegram commands")
    _config_opt(p)
    _db_opt(p)
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.set_defaults(func=cmd_monitor)

    p = sub.add_parser("test-telegram", help="Test the Telegram connection and send a test message")
    _config_opt(p)
    p.set_defaults(func=cmd_test_telegram)

    p = sub.add_parser("status", help="Show theatre, watchlist and showtime counts")
    _config_opt(p)
    _db_opt(p)
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("watchlist", help="Manage the watchlist")
    p.add_argument("action", choices=["add", "remove", "list"])
    p.add_argument("name", nargs="*", help="Movie name (for add/remove)")
    _config_opt(p)
    _db_opt(p)
    p.set_defaults(func=cmd_watchlist)

    p = sub.add_parser("create-config", help="Write a config template")
    p.add_argument("path", nargs="?", default=str(DEFAULT_CONFIG_PATH))
    p.set_defaults(func=cmd_create_config)

    p = sub.add_parser("telegram-setup", help="Show Telegram bot setup instructions")
    p.set_defaults(func=cmd_telegram_setup)

    p = sub.add_parser("reset-db", help="Delete all stored state")
    _config_opt(p)
    _db_opt(p)
    p.add_argument("--yes", action="store_true", help="Skip confirmation prompt")
    p.set_defaults(func=cmd_reset_db)

    p = sub.add_parser("logs", help="Show logs from recent runs")
    _config_opt(p)
    _db_opt(p)
    p.add_argument("-a", "--all", action="store_true", help="Show several runs, not just the latest")
    p.add_argument("-n", "--lines", type=int, default=5, help="Number of runs with --all")
    p.set_defaults(func=cmd_logs)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    setup_logging(verbose=getattr(args, "verbose", False))
    try:
        return args.func(args)
    except MonitorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception:
        logger.exception("Unexpected error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
