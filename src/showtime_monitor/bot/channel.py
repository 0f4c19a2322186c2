"""Telegram messaging channel.

Wraps ``telegram.Bot`` for the three things the monitor needs: sending
HTML messages to one chat, pulling inbound updates past a cursor, and a
connection check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError

from showtime_monitor.errors import MessagingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    id: int
    text: str
    authorized: bool = True


class TelegramChannel:
    def __init__(self, token: str, chat_id: str, bot: Bot | None = None) -> None:
        self.chat_id = str(chat_id)
        self.bot = bot or Bot(token)

    async def send_message(self, text: str) -> None:
        try:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
            )
        except TelegramError as e:
            logger.error("Failed to send Telegram message: %s", e)
            raise MessagingError(f"Telegram send failed: {e}") from e

    async def poll_inbound_since(self, cursor: int) -> list[InboundMessage]:
        """Updates newer than ``cursor``, oldest first.

        Every update is returned so the caller can advance past it, even
        ones without text or from another chat (``authorized=False``).
        """
        try:
            updates = await self.bot.get_updates(offset=cursor + 1, timeout=0)
        except TelegramError as e:
            logger.error("Failed to fetch Telegram updates: %s", e)
            raise MessagingError(f"Telegram getUpdates failed: {e}") from e

        inbound: list[InboundMessage] = []
        for update in sorted(updates, key=lambda u: u.update_id):
            message = update.effective_message
            chat = update.effective_chat
            text = (message.text or "") if message else ""
            authorized = chat is not None and str(chat.id) == self.chat_id
            inbound.append(InboundMessage(id=update.update_id, text=text, authorized=authorized))
        return inbound

    async def test_connection(self) -> bool:
        try:
            me = await self.bot.get_me()
        except TelegramError as e:
            logger.error("Failed to connect to Telegram bot: %s", e)
            return False
        logger.info("Telegram bot connected: %s", me.username)
        return True

    async def send_test_message(self) -> None:
        now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        await self.send_message(
            "🤖 <b>AMC Showtime Monitor Test</b>\n\n"
            "This is a test message to verify your Telegram bot is working correctly.\n\n"
            f"Time: {now}"
        )

    async def __aenter__(self) -> TelegramChannel:
        await self.bot.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.bot.shutdown()
