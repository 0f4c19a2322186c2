"""Slash commands sent to the bot to manage the watchlist.

Commands arrive as a batch of inbound messages once per run. Every
message advances the stored cursor, recognised or not, so nothing is
handled twice. Each recognised command gets exactly one reply, sent
before the next command is looked at.
"""

from __future__ import annotations

import logging
from html import escape
from typing import Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError

from showtime_monitor.bot.channel import InboundMessage
from showtime_monitor.store.database import ShowtimeDatabase

logger = logging.getLogger(__name__)

COMMAND_MARKER = "/"

HELP_TEXT = (
    "🤖 <b>AMC Showtime Monitor</b>\n\n"
    "/add &lt;movie&gt; - Add a movie to your watchlist\n"
    "/remove &lt;movie&gt; - Remove a movie from your watchlist\n"
    "/list - Show your watchlist\n"
    "/status - Show monitor status\n"
    "/help - Show this message"
)


class ReplySink(Protocol):
    async def send_message(self, text: str) -> None: ...


def parse_command(text: str) -> tuple[str, str] | None:
    """Split ``"/Add@my_bot Tron: Ares"`` into ``("add", "Tron: Ares")``.

    Returns None for text that isn't a command.
    """
    stripped = text.strip()
    if not stripped.startswith(COMMAND_MARKER):
        return None
    parts = stripped.split(None, 1)
    token = parts[0]
    rest = parts[1] if len(parts) > 1 else ""
    name = token[len(COMMAND_MARKER):].split("@", 1)[0].lower()
    return name, rest.strip()


class CommandProcessor:
    def __init__(
        self,
        db: ShowtimeDatabase,
        channel: ReplySink,
        location_name: str | None = None,
    ) -> None:
        self.db = db
        self.channel = channel
        self.location_name = location_name
        self._handlers = {
            "add": self._add,
            "remove": self._remove,
            "list": self._list,
            "status": self._status,
            "help": self._help,
            "start": self._help,
        }

    async def process(self, inbound: Sequence[InboundMessage]) -> int:
        """Handle a batch of inbound messages. Returns how many were commands."""
        handled = 0
        for message in inbound:
            self._advance_cursor(message.id)
            if not message.authorized:
                logger.debug("Ignoring update %s from another chat", message.id)
                continue
            parsed = parse_command(message.text)
            if parsed is None:
                continue
            name, argument = parsed
            handler = self._handlers.get(name)
            if handler is None:
                reply = (
                    f"❓ Unknown command: {escape(COMMAND_MARKER + name)}\n\n{HELP_TEXT}"
                )
            else:
                reply = handler(argument)
            logger.info("Processed command /%s", name)
            await self.channel.send_message(reply)
            handled += 1
        return handled

    def _advance_cursor(self, message_id: int) -> None:
        try:
            self.db.advance_command_cursor(message_id)
        except SQLAlchemyError:
            logger.exception("Failed to store command cursor %s", message_id)

    # -- handlers ----------------------------------------------------------

    def _add(self, movie: str) -> str:
        if not movie:
            return "Usage: /add &lt;movie name&gt;\nExample: /add Tron: Ares"
        try:
            added = self.db.add_to_watchlist(movie)
        except SQLAlchemyError:
            logger.exception("Failed to add %r to watchlist", movie)
            return f"❌ Could not add <b>{escape(movie)}</b>, please try again later."
        if not added:
            return f"ℹ️ <b>{escape(movie)}</b> is already in your watchlist."
        logger.info("Added to watchlist", extra={"title": movie})
        return f"✅ Added <b>{escape(movie)}</b> to your watchlist."

    def _remove(self, movie: str) -> str:
        if not movie:
            return "Usage: /remove &lt;movie name&gt;\nExample: /remove Tron: Ares"
        try:
            removed = self.db.remove_from_watchlist(movie)
        except SQLAlchemyError:
            logger.exception("Failed to remove %r from watchlist", movie)
            return f"❌ Could not remove <b>{escape(movie)}</b>, please try again later."
        if not removed:
            return f"❌ <b>{escape(movie)}</b> not found in your watchlist."
        logger.info("Removed from watchlist", extra={"title": movie})
        return f"🗑️ Removed <b>{escape(movie)}</b> from your watchlist."

    def _list(self, _argument: str) -> str:
        try:
            movies = self.db.get_watchlist()
        except SQLAlchemyError:
            logger.exception("Failed to read watchlist")
            return "❌ Could not read your watchlist, please try again later."
        if not movies:
            return "📭 Your watchlist is empty. Use /add &lt;movie&gt; to add one."
        lines = [f"🎬 <b>Watchlist ({len(movies)})</b>", ""]
        lines += [f"{i}. {escape(name)}" for i, name in enumerate(movies, 1)]
        return "\n".join(lines)

    def _status(self, _argument: str) -> str:
        try:
            watched = len(self.db.get_watchlist())
            tracked = self.db.count_showtimes()
            pending = self.db.count_unnotified_showtimes()
        except SQLAlchemyError:
            logger.exception("Failed to read monitor status")
            return "❌ Could not read monitor status, please try again later."
        return "\n".join([
            "📊 <b>Monitor Status</b>",
            "",
            f"🏛️ Theatre: {escape(self.location_name or 'Not resolved')}",
            f"🎬 Watchlist: {watched} movies",
            f"📅 Tracked showtimes: {tracked}",
            f"⏳ Pending notifications: {pending}",
        ])

    def _help(self, _argument: str) -> str:
        return HELP_TEXT
