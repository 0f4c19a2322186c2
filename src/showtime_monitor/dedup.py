"""New-showtime detection.

A showing is new exactly when its natural key is absent from the store at
upsert time. New showings are marked notified right away, before any
message goes out: a failed send loses that notification, but a crash
after sending can never cause a duplicate one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable

from showtime_monitor.catalog.models import CatalogShowtime
from showtime_monitor.store.database import ShowtimeCandidate, ShowtimeDatabase
from showtime_monitor.store.models import Location, Title

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewShowtime:
    """A just-detected showing plus the names needed to announce it."""

    showtime_id: int
    title_name: str
    location_name: str
    start_utc: datetime
    start_local: str
    auditorium: int
    sold_out: bool = False
    almost_sold_out: bool = False
    attributes: list[dict] = field(default_factory=list)
    ticket_url: str | None = None


def to_candidate(
    showtime: CatalogShowtime,
    title: Title,
    location: Location,
    ticket_url: str | None = None,
) -> ShowtimeCandidate:
    return ShowtimeCandidate(
        title_id=title.id,
        location_id=location.id,
        start_utc=showtime.start_utc,
        start_local=showtime.start_local,
        auditorium=showtime.auditorium,
        sold_out=showtime.sold_out,
        almost_sold_out=showtime.almost_sold_out,
        attributes=[a.to_dict() for a in showtime.attributes],
        ticket_url=ticket_url,
    )


def record_showtimes(
    db: ShowtimeDatabase,
    title: Title,
    location: Location,
    showtimes: Iterable[CatalogShowtime],
    ticket_url: Callable[[CatalogShowtime], str] | None = None,
    now: datetime | None = None,
) -> list[NewShowtime]:
    """Upsert every showing of one title and return the new ones.

    Store errors propagate so the caller can abandon this title.
    """
    cutoff = now or datetime.now(timezone.utc)
    new: list[NewShowtime] = []
    seen = 0

    for showtime in showtimes:
        if showtime.start_utc <= cutoff:
            logger.debug("Skipping expired showtime %s", showtime.id)
            continue
        seen += 1
        url = ticket_url(showtime) if ticket_url else None
        candidate = to_candidate(showtime, title, location, url)
        result = db.upsert_showtime(candidate)
        if not result.is_new:
            continue

        db.mark_showtime_notified(result.id)
        logger.info(
            "New showtime: %s (auditorium %s)",
            showtime.start_local,
            showtime.auditorium,
            extra={"title": title.name, "location": location.name},
        )
        new.append(
            NewShowtime(
                showtime_id=result.id,
                title_name=title.name,
                location_name=location.name,
                start_utc=showtime.start_utc,
                start_local=showtime.start_local,
                auditorium=showtime.auditorium,
                sold_out=showtime.sold_out,
                almost_sold_out=showtime.almost_sold_out,
                attributes=candidate.attributes,
                ticket_url=url,
            )
        )

    if new:
        logger.info(
            "%d new of %d showtimes",
            len(new),
            seen,
            extra={"title": title.name, "location": location.name},
        )
    return new
