"""Sequential delivery of notification batches."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence

from showtime_monitor.notifications.formatter import OutboundMessage

logger = logging.getLogger(__name__)


class MessageSink(Protocol):
    async def send_message(self, text: str) -> None: ...


async def send_batches(
    channel: MessageSink,
    messages: Sequence[OutboundMessage],
    delay: float = 0.5,
) -> int:
    """Send each batch in order, pausing ``delay`` seconds between sends.

    A failed send is logged and re-raised; later batches are not sent.
    Returns the number of messages delivered.
    """
    sent = 0
    for index, message in enumerate(messages):
        if index and delay > 0:
            await asyncio.sleep(delay)
        try:
            await channel.send_message(message.text)
        except Exception:
            logger.error(
                "Failed to send batch notification for %s",
                message.title_name,
                extra={"title": message.title_name},
            )
            raise
        sent += 1
        logger.info(
            "Batch notification sent for %s (%d showtimes)",
            message.title_name,
            len(message.showtime_ids),
            extra={"title": message.title_name},
        )
    return sent
