"""SQLAlchemy ORM models for the monitor's SQLite state."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Location(Base):
    """A theatre. The catalog's own id is reused as the primary key."""

    __tablename__ = "theatres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    location_text: Mapped[str] = mapped_column(String, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Location {self.id} {self.slug}>"


class Title(Base):
    """A movie as last seen in the catalog, keyed by the catalog id."""

    __tablename__ = "movies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    release_date: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    rating: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    run_time_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    genre: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    last_checked_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Title {self.id} {self.slug}>"


class ShowtimeRecord(Base):
    """One showing of a title at a location.

    ``(title_id, location_id, start_utc, auditorium)`` identifies a showing.
    ``first_seen_at`` is written once; ``notified`` only ever goes to True.
    """

    __tablename__ = "showtimes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title_id: Mapped[int] = mapped_column(ForeignKey("movies.id"), nullable=False)
    location_id: Mapped[int] = mapped_column(ForeignKey("theatres.id"), nullable=False)
    start_utc: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    start_local: Mapped[str] = mapped_column(String, nullable=False)
    auditorium: Mapped[int] = mapped_column(Integer, nullable=False)
    sold_out: Mapped[bool] = mapped_column(Boolean, default=False)
    almost_sold_out: Mapped[bool] = mapped_column(Boolean, default=False)
    attributes: Mapped[list] = mapped_column(JSON, default=list)
    ticket_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    notified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    title: Mapped[Title] = relationship(lazy="joined")
    location: Mapped[Location] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint(
            "title_id", "location_id", "start_utc", "auditorium",
            name="uq_showtime_natural_key",
        ),
        Index("idx_showtimes_notified", "notified"),
        Index("idx_showtimes_first_seen", "first_seen_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ShowtimeRecord {self.id} title={self.title_id} "
            f"loc={self.location_id} {self.start_utc} aud={self.auditorium}>"
        )


class WatchlistEntry(Base):
    __tablename__ = "watchlist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    movie_name: Mapped[str] = mapped_column(
        String(collation="NOCASE"), unique=True, nullable=False
    )
    added_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class BotState(Base):
    """Key-value state (e.g. the inbound command cursor)."""

    __tablename__ = "bot_state"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class RunLogEntry(Base):
    __tablename__ = "logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    level: Mapped[str] = mapped_column(String, nullable=False, default="INFO")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String, nullable=True)
