"""Showtime database (SQLAlchemy ORM + SQLite).

All reads and writes of persisted state go through ``ShowtimeDatabase``.
Each write method commits on its own, so a crash mid-run leaves every
completed upsert in place and the next run picks up from there.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from showtime_monitor.catalog.models import CatalogLocation, CatalogTitle
from showtime_monitor.store.models import (
    Base,
    BotState,
    Location,
    RunLogEntry,
    ShowtimeRecord,
    Title,
    WatchlistEntry,
)

logger = logging.getLogger(__name__)

COMMAND_CURSOR_KEY = "telegram_update_offset"
LOCATION_ALIAS_PREFIX = "theatre_alias:"


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_storage_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive input is assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class ShowtimeCandidate:
    """A freshly fetched showing, ready to be matched against the store."""

    title_id: int
    location_id: int
    start_utc: datetime
    start_local: str
    auditorium: int
    sold_out: bool = False
    almost_sold_out: bool = False
    attributes: list[dict] = field(default_factory=list)
    ticket_url: str | None = None


@dataclass(frozen=True)
class UpsertResult:
    id: int
    is_new: bool


class ShowtimeDatabase:
    """Persisted state for locations, titles, showtimes and the bot."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # -- locations ---------------------------------------------------------

    def upsert_location(self, location: CatalogLocation) -> Location:
        """Insert or refresh a theatre, keyed on its slug."""
        row = self.get_location_by_slug(location.slug)
        if row is None:
            row = self._session.get(Location, location.id)
        if row is None:
            row = Location(id=location.id, slug=location.slug, created_at=utcnow())
            self._session.add(row)
        row.name = location.name
        row.slug = location.slug
        row.location_text = location.location_text
        self._session.commit()
        return row

    def get_location(self, location_id: int) -> Location | None:
        return self._session.get(Location, location_id)

    def get_location_by_slug(self, slug: str) -> Location | None:
        stmt = select(Location).where(Location.slug == slug)
        return self._session.scalars(stmt).first()

    def find_location_by_name(self, name: str) -> Location | None:
        """Exact, case-insensitive name match."""
        stmt = select(Location).where(func.lower(Location.name) == name.strip().lower())
        return self._session.scalars(stmt).first()

    def list_locations(self) -> list[Location]:
        stmt = select(Location).order_by(Location.name)
        return list(self._session.scalars(stmt))

    def get_location_alias(self, query: str) -> Location | None:
        """The theatre a free-text query resolved to on an earlier run."""
        raw = self.get_state(LOCATION_ALIAS_PREFIX + query.strip().lower())
        if not raw:
            return None
        try:
            return self.get_location(int(raw))
        except ValueError:
            logger.warning("Ignoring corrupt theatre alias %r for %r", raw, query)
            return None

    def set_location_alias(self, query: str, location_id: int) -> None:
        self.set_state(LOCATION_ALIAS_PREFIX + query.strip().lower(), str(location_id))

    # -- titles ------------------------------------------------------------

    def upsert_title(self, title: CatalogTitle) -> Title:
        """Insert or refresh a movie, keyed on its slug.

        ``last_checked_at`` is bumped on every call.
        """
        stmt = select(Title).where(Title.slug == title.slug)
        row = self._session.scalars(stmt).first()
        if row is None:
            row = self._session.get(Title, title.id)
        if row is None:
            row = Title(id=title.id, slug=title.slug)
            self._session.add(row)
        row.name = title.name
        row.slug = title.slug
        row.release_date = title.release_date
        row.rating = title.rating
        row.run_time_minutes = title.run_time_minutes
        row.genre = title.genre
        row.last_checked_at = utcnow()
        self._session.commit()
        return row

    def touch_title_checked(self, title_id: int) -> None:
        row = self._session.get(Title, title_id)
        if row is not None:
            row.last_checked_at = utcnow()
            self._session.commit()

    def get_title(self, title_id: int) -> Title | None:
        return self._session.get(Title, title_id)

    # -- showtimes ---------------------------------------------------------

    def find_showtime(
        self, title_id: int, location_id: int, start_utc: datetime, auditorium: int
    ) -> ShowtimeRecord | None:
        """Look a showing up by its natural key."""
        stmt = select(ShowtimeRecord).where(
            ShowtimeRecord.title_id == title_id,
            ShowtimeRecord.location_id == location_id,
            ShowtimeRecord.start_utc == to_storage_utc(start_utc),
            ShowtimeRecord.auditorium == auditorium,
        )
        return self._session.scalars(stmt).first()

    def upsert_showtime(self, candidate: ShowtimeCandidate) -> UpsertResult:
        """Record a showing and report whether it was seen before.

        An existing row gets its mutable fields refreshed (local time,
        seat status, attributes, ticket link) and keeps ``first_seen_at``
        and ``notified``. A missing row is inserted un-notified.
        """
        row = self.find_showtime(
            candidate.title_id,
            candidate.location_id,
            candidate.start_utc,
            candidate.auditorium,
        )
        is_new = row is None
        if is_new:
            row = ShowtimeRecord(
                title_id=candidate.title_id,
                location_id=candidate.location_id,
                start_utc=to_storage_utc(candidate.start_utc),
                auditorium=candidate.auditorium,
                first_seen_at=utcnow(),
                notified=False,
            )
            self._session.add(row)

        row.start_local = candidate.start_local
        row.sold_out = candidate.sold_out
        row.almost_sold_out = candidate.almost_sold_out
        row.attributes = list(candidate.attributes)
        row.ticket_url = candidate.ticket_url
        try:
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return UpsertResult(id=row.id, is_new=is_new)

    def mark_showtime_notified(self, showtime_id: int) -> None:
        row = self._session.get(ShowtimeRecord, showtime_id)
        if row is None or row.notified:
            return
        row.notified = True
        self._session.commit()

    def get_showtime(self, showtime_id: int) -> ShowtimeRecord | None:
        return self._session.get(ShowtimeRecord, showtime_id)

    def get_unnotified_showtimes(self) -> list[ShowtimeRecord]:
        stmt = (
            select(ShowtimeRecord)
            .where(ShowtimeRecord.notified.is_(False))
            .order_by(ShowtimeRecord.first_seen_at)
        )
        return list(self._session.scalars(stmt))

    def count_showtimes(self) -> int:
        return self._session.scalar(select(func.count()).select_from(ShowtimeRecord)) or 0

    def count_unnotified_showtimes(self) -> int:
        stmt = (
            select(func.count())
            .select_from(ShowtimeRecord)
            .where(ShowtimeRecord.notified.is_(False))
        )
        return self._session.scalar(stmt) or 0

    # -- watchlist ---------------------------------------------------------

    def _find_watchlist_entry(self, movie_name: str) -> WatchlistEntry | None:
        stmt = select(WatchlistEntry).where(
            func.lower(WatchlistEntry.movie_name) == movie_name.strip().lower()
        )
        return self._session.scalars(stmt).first()

    def add_to_watchlist(self, movie_name: str) -> bool:
        """Add a movie name. Returns False if it was already present."""
        name = movie_name.strip()
        if not name or self._find_watchlist_entry(name) is not None:
            return False
        self._session.add(WatchlistEntry(movie_name=name, added_at=utcnow()))
        self._session.commit()
        return True

    def remove_from_watchlist(self, movie_name: str) -> bool:
        """Remove a movie name (case-insensitive). Returns False if absent."""
        entry = self._find_watchlist_entry(movie_name)
        if entry is None:
            return False
        self._session.delete(entry)
        self._session.commit()
        return True

    def is_in_watchlist(self, movie_name: str) -> bool:
        return self._find_watchlist_entry(movie_name) is not None

    def get_watchlist(self) -> list[str]:
        stmt = select(WatchlistEntry.movie_name).order_by(
            WatchlistEntry.added_at, WatchlistEntry.id
        )
        return list(self._session.scalars(stmt))

    # -- bot state ---------------------------------------------------------

    def get_state(self, key: str) -> str | None:
        row = self._session.get(BotState, key)
        return row.value if row else None

    def set_state(self, key: str, value: str) -> None:
        row = self._session.get(BotState, key)
        if row is None:
            self._session.add(BotState(key=key, value=value, updated_at=utcnow()))
        else:
            row.value = value
            row.updated_at = utcnow()
        self._session.commit()

    def get_command_cursor(self) -> int:
        raw = self.get_state(COMMAND_CURSOR_KEY)
        if not raw:
            return 0
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring corrupt command cursor %r", raw)
            return 0

    def advance_command_cursor(self, message_id: int) -> int:
        """Move the cursor forward to ``message_id``; never moves it back."""
        current = self.get_command_cursor()
        if message_id > current:
            self.set_state(COMMAND_CURSOR_KEY, str(message_id))
            return message_id
        return current

    # -- run logs ----------------------------------------------------------

    def add_logs(self, entries: list[RunLogEntry]) -> None:
        if not entries:
            return
        self._session.add_all(entries)
        try:
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

    def add_log(
        self,
        run_id: str,
        level: str,
        message: str,
        title: str | None = None,
        location: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        self.add_logs([
            RunLogEntry(
                run_id=run_id,
                timestamp=timestamp or utcnow(),
                level=level,
                message=message,
                title=title,
                location=location,
            )
        ])

    def get_recent_logs(self, limit: int = 100) -> list[RunLogEntry]:
        """Newest first."""
        stmt = (
            select(RunLogEntry)
            .order_by(RunLogEntry.timestamp.desc(), RunLogEntry.id.desc())
            .limit(limit)
        )
        return list(self._session.scalars(stmt))

    def get_logs_by_run_id(self, run_id: str) -> list[RunLogEntry]:
        """Oldest first."""
        stmt = (
            select(RunLogEntry)
            .where(RunLogEntry.run_id == run_id)
            .order_by(RunLogEntry.timestamp, RunLogEntry.id)
        )
        return list(self._session.scalars(stmt))

    def get_recent_run_ids(self, limit: int = 5) -> list[str]:
        stmt = (
            select(RunLogEntry.run_id)
            .group_by(RunLogEntry.run_id)
            .order_by(func.max(RunLogEntry.id).desc())
            .limit(limit)
        )
        return list(self._session.scalars(stmt))

    # -- lifecycle ---------------------------------------------------------

    def close(self) -> None:
        self._session.close()
        bind = self._session.get_bind()
        if isinstance(bind, Engine):
            bind.dispose()

    @classmethod
    def open(cls, path: str | Path) -> ShowtimeDatabase:
        """Open (or create) the SQLite database at ``path``.

        ``":memory:"`` gives a throwaway database, handy for tests.
        """
        options: dict = {"connect_args": {"check_same_thread": False}}
        if str(path) == ":memory:":
            url = "sqlite://"
            # one shared connection, or every checkout sees an empty db
            options["poolclass"] = StaticPool
        else:
            db_path = Path(path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{db_path}"

        engine = create_engine(url, echo=False, **options)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        Base.metadata.create_all(engine)
        session = sessionmaker(bind=engine, expire_on_commit=False)()
        logger.debug("Opened showtime database at %s", path)
        return cls(session)
