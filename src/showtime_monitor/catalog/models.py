"""Typed views of the AMC catalog's JSON payloads.

Every ``from_json`` validates the fields the monitor relies on and raises
MalformedResponseError instead of letting loose dicts into the core.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from showtime_monitor.errors import MalformedResponseError


def _require(data: dict, key: str, kind: type, what: str):
    if not isinstance(data, dict):
        raise MalformedResponseError(f"{what}: expected an object, got {type(data).__name__}")
    value = data.get(key)
    if value is None:
        raise MalformedResponseError(f"{what}: missing '{key}'")
    # bool is an int subclass and is never a valid id or number here
    if isinstance(value, bool) or not isinstance(value, kind):
        raise MalformedResponseError(f"{what}: '{key}' has wrong type")
    return value


def _optional(data: dict, key: str, kind: type):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, kind):
        return None
    return value


def parse_utc(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class CatalogAttribute:
    code: str
    name: str

    @classmethod
    def from_json(cls, data: dict) -> CatalogAttribute:
        return cls(
            code=str(_require(data, "code", str, "attribute")),
            name=str(data.get("name") or data.get("code")),
        )

    def to_dict(self) -> dict:
        return {"code": self.code, "name": self.name}


@dataclass(frozen=True)
class CatalogLocation:
    id: int
    name: str
    slug: str
    long_name: str = ""
    city: str = ""
    state: str = ""

    @property
    def location_text(self) -> str:
        return ", ".join(part for part in (self.city, self.state) if part)

    @classmethod
    def from_json(cls, data: dict) -> CatalogLocation:
        place = data.get("location") if isinstance(data, dict) else None
        if not isinstance(place, dict):
            place = {}
        return cls(
            id=_require(data, "id", int, "theatre"),
            name=_require(data, "name", str, "theatre"),
            slug=_require(data, "slug", str, "theatre"),
            long_name=_optional(data, "longName", str) or "",
            city=_optional(place, "city", str) or "",
            state=_optional(place, "state", str) or "",
        )


@dataclass(frozen=True)
class CatalogTitle:
    id: int
    name: str
    slug: str
    genre: str | None = None
    rating: str | None = None
    run_time_minutes: int | None = None
    release_date: str | None = None

    @classmethod
    def from_json(cls, data: dict) -> CatalogTitle:
        return cls(
            id=_require(data, "id", int, "movie"),
            name=_require(data, "name", str, "movie"),
            slug=_require(data, "slug", str, "movie"),
            genre=_optional(data, "genre", str),
            rating=_optional(data, "mpaaRating", str),
            run_time_minutes=_optional(data, "runTime", int),
            release_date=_optional(data, "releaseDateUtc", str),
        )


@dataclass(frozen=True)
class CatalogShowtime:
    id: int
    title_id: int
    location_id: int
    start_utc: datetime
    start_local: str
    auditorium: int
    sold_out: bool = False
    almost_sold_out: bool = False
    title_name: str = ""
    attributes: tuple[CatalogAttribute, ...] = field(default_factory=tuple)

    @classmethod
    def from_json(cls, data: dict) -> CatalogShowtime:
        raw_utc = _require(data, "showDateTimeUtc", str, "showtime")
        try:
            start_utc = parse_utc(raw_utc)
        except ValueError:
            raise MalformedResponseError(
                f"showtime: bad showDateTimeUtc {raw_utc!r}"
            ) from None

        raw_attributes = data.get("attributes") or []
        if not isinstance(raw_attributes, list):
            raise MalformedResponseError("showtime: 'attributes' must be a list")

        return cls(
            id=_require(data, "id", int, "showtime"),
            title_id=_require(data, "movieId", int, "showtime"),
            location_id=_require(data, "theatreId", int, "showtime"),
            start_utc=start_utc,
            start_local=_require(data, "showDateTimeLocal", str, "showtime"),
            auditorium=_require(data, "auditorium", int, "showtime"),
            sold_out=bool(data.get("isSoldOut", False)),
            almost_sold_out=bool(data.get("isAlmostSoldOut", False)),
            title_name=_optional(data, "movieName", str) or "",
            attributes=tuple(CatalogAttribute.from_json(a) for a in raw_attributes),
        )


def embedded_list(payload, key: str) -> list[dict]:
    """Return ``payload["_embedded"][key]`` from a paged response."""
    if not isinstance(payload, dict):
        raise MalformedResponseError("response: expected a JSON object")
    embedded = payload.get("_embedded")
    if embedded is None:
        # AMC omits _embedded entirely when a page has no items
        return []
    if not isinstance(embedded, dict):
        raise MalformedResponseError("response: '_embedded' must be an object")
    items = embedded.get(key) or []
    if not isinstance(items, list):
        raise MalformedResponseError(f"response: '_embedded.{key}' must be a list")
    return items
