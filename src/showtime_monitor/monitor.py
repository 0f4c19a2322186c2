"""One monitoring run.

Load watchlist -> fetch the catalog once -> fuzzy-match each entry ->
record showtimes per matched movie -> send one batch per movie ->
process inbound bot commands. Nothing survives between runs except the
database.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from showtime_monitor.bot.channel import TelegramChannel
from showtime_monitor.bot.commands import CommandProcessor
from showtime_monitor.catalog.client import CatalogClient
from showtime_monitor.catalog.models import CatalogTitle
from showtime_monitor.config import AppConfig
from showtime_monitor.dedup import NewShowtime, record_showtimes
from showtime_monitor.errors import (
    FATAL_UPSTREAM_ERRORS,
    CatalogError,
    LocationNotFoundError,
    MessagingError,
)
from showtime_monitor.notifications.formatter import batch
from showtime_monitor.notifications.sender import send_batches
from showtime_monitor.resolver import LocationResolver, resolve_titles
from showtime_monitor.store.database import ShowtimeDatabase
from showtime_monitor.store.models import Location

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    location: str | None = None
    watchlist: list[str] = field(default_factory=list)
    matched_titles: int = 0
    new_showtimes: int = 0
    messages_sent: int = 0
    commands_processed: int = 0
    failed_titles: list[str] = field(default_factory=list)


@dataclass
class MonitorStatus:
    location: str | None
    location_text: str | None
    watchlist: list[str]
    total_showtimes: int
    unnotified_showtimes: int


class ShowtimeMonitor:
    def __init__(
        self,
        config: AppConfig,
        db: ShowtimeDatabase,
        catalog: CatalogClient,
        channel: TelegramChannel,
    ) -> None:
        self.config = config
        self.db = db
        self.catalog = catalog
        self.channel = channel
        self.resolver = LocationResolver(
            catalog, db, threshold=config.location_match_threshold
        )

    async def run(self, now: datetime | None = None) -> RunSummary:
        """Run one full check.

        Rate-limit and auth failures from the catalog abort the run.
        Anything else going wrong with a single movie is logged and the
        run moves on.
        """
        summary = RunSummary()
        location = self._resolve_location()

        if location is not None:
            summary.location = location.name
            new = await self.check_showtimes(location, summary, now=now)
            summary.new_showtimes = len(new)
            if new:
                messages = batch(new)
                logger.info("Sending %d notifications...", len(messages))
                try:
                    summary.messages_sent = await send_batches(
                        self.channel, messages, delay=self.config.send_delay_seconds
                    )
                except MessagingError:
                    # already marked notified; these showings will not be retried
                    logger.exception("Failed to send notifications")
            else:
                logger.info("No new showtimes found")

        summary.commands_processed = await self.process_commands(
            location.name if location else None
        )
        logger.info("Check complete")
        return summary

    def _resolve_location(self) -> Location | None:
        try:
            return self.resolver.require(self.config.theatre)
        except FATAL_UPSTREAM_ERRORS:
            raise
        except LocationNotFoundError as e:
            logger.error("%s, skipping showtime check", e)
        except CatalogError:
            logger.exception("Theatre lookup failed, skipping showtime check")
        return None

    async def check_showtimes(
        self,
        location: Location,
        summary: RunSummary | None = None,
        now: datetime | None = None,
    ) -> list[NewShowtime]:
        summary = summary or RunSummary()
        summary.watchlist = self._load_watchlist()
        if not summary.watchlist:
            logger.info("Watchlist is empty, nothing to check")
            return []

        try:
            snapshot = await asyncio.to_thread(self.catalog.list_all_titles)
        except FATAL_UPSTREAM_ERRORS:
            raise
        except CatalogError:
            logger.exception("Failed to fetch the movie catalog, skipping showtime check")
            return []

        new: list[NewShowtime] = []
        checked: set[int] = set()
        for movie_name in summary.watchlist:
            matches = resolve_titles(snapshot, movie_name, self.config.title_match_threshold)
            if not matches:
                logger.warning("No relevant movies found for: %s", movie_name, extra={"title": movie_name})
                continue
            logger.info(
                "Found %d relevant movies for: %s",
                len(matches),
                movie_name,
                extra={"title": movie_name},
            )
            for title in matches:
                # two watchlist entries can match the same catalog movie
                if title.id in checked:
                    continue
                checked.add(title.id)
                summary.matched_titles += 1
                try:
                    new += await self._check_title(title, location, now)
                except FATAL_UPSTREAM_ERRORS:
                    raise
                except Exception:
                    logger.exception(
                        "Error processing movie %s",
                        title.name,
                        extra={"title": title.name, "location": location.name},
                    )
                    summary.failed_titles.append(title.name)
        return new

    async def _check_title(
        self, title: CatalogTitle, location: Location, now: datetime | None
    ) -> list[NewShowtime]:
        logger.info("Processing showtimes for: %s", title.name, extra={"title": title.name})
        title_row = self.db.upsert_title(title)
        showtimes = await asyncio.to_thread(
            self.catalog.list_showtimes, title.id, location.id, now
        )
        logger.info(
            "Found %d upcoming showtimes",
            len(showtimes),
            extra={"title": title.name, "location": location.name},
        )
        new = record_showtimes(
            self.db,
            title_row,
            location,
            showtimes,
            ticket_url=self.catalog.ticket_url,
            now=now or datetime.now(timezone.utc),
        )
        self.db.touch_title_checked(title_row.id)
        return new

    def _load_watchlist(self) -> list[str]:
        try:
            return self.db.get_watchlist()
        except SQLAlchemyError:
            logger.exception("Failed to load watchlist")
            return []

    async def process_commands(self, location_name: str | None = None) -> int:
        try:
            cursor = self.db.get_command_cursor()
        except SQLAlchemyError:
            logger.exception("Failed to read command cursor, skipping commands")
            return 0
        try:
            inbound = await self.channel.poll_inbound_since(cursor)
        except MessagingError:
            logger.exception("Failed to fetch bot commands")
            return 0
        if not inbound:
            return 0
        logger.info("Processing %d inbound updates", len(inbound))
        processor = CommandProcessor(self.db, self.channel, location_name=location_name)
        return await processor.process(inbound)

    async def status(self) -> MonitorStatus:
        location = self.resolver.resolve(self.config.theatre)
        return MonitorStatus(
            location=location.name if location else None,
            location_text=location.location_text if location else None,
            watchlist=self.db.get_watchlist(),
            total_showtimes=self.db.count_showtimes(),
            unnotified_showtimes=self.db.count_unnotified_showtimes(),
        )
