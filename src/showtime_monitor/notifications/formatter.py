"""Telegram HTML formatting for new-showtime notifications."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from html import escape
from typing import Iterable

from showtime_monitor.dedup import NewShowtime

# Telegram HTML message limit
_MAX_MESSAGE_LEN = 4096

# Best first. Matched as substrings of the lowercased attribute code.
PREMIUM_FORMATS = (
    # laser IMAX
    "imaxwithlaseratamc",
    "imaxwithlaser",
    "laserimax",
    # premium Dolby
    "dolbycinemaatamcprime",
    "dolbycinemaatamc",
    "dolbycinema",
    "dolbyatmos",
    # plain IMAX
    "imax3d",
    "imax",
    # 3D, laser projection, luxury seating
    "reald3d",
    "3d",
    "laseratamc",
    "primeatamc",
    "dbox",
    "screenx",
    "luxury",
    "recliner",
    "premium",
)

_BRAND_SUFFIX_RE = re.compile(r"\s+at\s+AMC(\s+Prime)?\s*$", re.IGNORECASE)

MARKER_SOLD_OUT = "❌"
MARKER_ALMOST_SOLD_OUT = "⚠️"
MARKER_OPEN = "🎬"


@dataclass(frozen=True)
class OutboundMessage:
    title_name: str
    text: str
    showtime_ids: list[int] = field(default_factory=list)


def best_format(attributes: Iterable[dict]) -> str | None:
    """Display name of the most premium attribute, brand suffix removed."""
    attrs = [a for a in attributes if a.get("code")]
    for fmt in PREMIUM_FORMATS:
        for attr in attrs:
            if fmt in str(attr["code"]).lower():
                name = str(attr.get("name") or attr["code"])
                return _BRAND_SUFFIX_RE.sub("", name).strip() or name
    return None


def status_marker(sold_out: bool, almost_sold_out: bool) -> str:
    if sold_out:
        return MARKER_SOLD_OUT
    if almost_sold_out:
        return MARKER_ALMOST_SOLD_OUT
    return MARKER_OPEN


def parse_local(value: str) -> datetime | None:
    """Theatre-local wall time; any UTC offset is dropped."""
    try:
        return datetime.fromisoformat(value.strip()).replace(tzinfo=None)
    except ValueError:
        return None


def _sort_key(showtime: NewShowtime) -> tuple:
    local = parse_local(showtime.start_local)
    return (local is None, local or datetime.min, showtime.start_local)


def format_when(start_local: str) -> tuple[str, str]:
    """("Sat, Oct 18", "7:00 PM"), or the raw string if it won't parse."""
    local = parse_local(start_local)
    if local is None:
        return start_local, ""
    date_str = f"{local:%a, %b} {local.day}"
    time_str = f"{local.hour % 12 or 12}:{local:%M %p}"
    return date_str, time_str


def format_line(showtime: NewShowtime) -> str:
    marker = status_marker(showtime.sold_out, showtime.almost_sold_out)
    date_str, time_str = format_when(showtime.start_local)
    when = escape(time_str)
    if showtime.ticket_url and when:
        when = f'<a href="{escape(showtime.ticket_url)}">{when}</a>'
    fmt = best_format(showtime.attributes) or f"Aud {showtime.auditorium}"
    parts = [marker, escape(date_str)]
    if when:
        parts.append(when)
    return f"{' '.join(parts)} - {escape(fmt)}"


def _header(title_name: str, location_name: str, count: int) -> list[str]:
    noun = "Showtime" if count == 1 else "Showtimes"
    lines = [f"🎬 <b>{count} New {noun} for {escape(title_name)}!</b>"]
    if location_name:
        lines.append(f"🏛️ {escape(location_name)}")
    lines.append("")
    return lines


def format_batch(title_name: str, showtimes: list[NewShowtime]) -> list[str]:
    """Render one title's new showtimes, oldest first.

    Usually one message; split at line boundaries past Telegram's limit.
    """
    ordered = sorted(showtimes, key=_sort_key)
    location_name = ordered[0].location_name if ordered else ""
    header = _header(title_name, location_name, len(ordered))
    lines = [format_line(s) for s in ordered]

    full_text = "\n".join(header + lines)
    if len(full_text) <= _MAX_MESSAGE_LEN:
        return [full_text]

    messages: list[str] = []
    current = list(header)
    for line in lines:
        candidate = "\n".join(current + [line])
        if len(candidate) > _MAX_MESSAGE_LEN and len(current) > len(header):
            messages.append("\n".join(current))
            current = list(header)
        current.append(line)
    messages.append("\n".join(current))
    return messages


def batch(new_showtimes: Iterable[NewShowtime]) -> list[OutboundMessage]:
    """Group new showtimes by title into outbound messages.

    Titles keep the order in which they were first seen.
    """
    groups: dict[str, list[NewShowtime]] = {}
    for showtime in new_showtimes:
        groups.setdefault(showtime.title_name, []).append(showtime)

    messages: list[OutboundMessage] = []
    for title_name, showtimes in groups.items():
        ids = [s.showtime_id for s in showtimes]
        for text in format_batch(title_name, showtimes):
            messages.append(OutboundMessage(title_name=title_name, text=text, showtime_ids=ids))
    return messages
