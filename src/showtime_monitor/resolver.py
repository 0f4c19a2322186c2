"""Resolve free-text theatre and movie names to catalog entities."""

from __future__ import annotations

import logging
from typing import Sequence

from showtime_monitor.catalog.client import CatalogClient
from showtime_monitor.catalog.models import CatalogLocation, CatalogTitle
from showtime_monitor.errors import FATAL_UPSTREAM_ERRORS, CatalogError, LocationNotFoundError
from showtime_monitor.matching import contains_match, match
from showtime_monitor.store.database import ShowtimeDatabase
from showtime_monitor.store.models import Location

logger = logging.getLogger(__name__)


def looks_like_slug(value: str) -> bool:
    """``amc-lincoln-square-13`` yes, ``AMC Lincoln Square 13`` no."""
    text = value.strip()
    return "-" in text and not any(ch.isspace() for ch in text)


def pick_location(
    query: str, results: Sequence[CatalogLocation], threshold: float
) -> CatalogLocation | None:
    """Choose one theatre from a catalog name search.

    Exact name or long name first, then the closest fuzzy match, then a
    substring match, then whatever the catalog ranked first.
    """
    if not results:
        return None
    wanted = query.strip().lower()
    for theatre in results:
        if theatre.name.lower() == wanted or theatre.long_name.lower() == wanted:
            return theatre
    fuzzy = match(query, results, threshold)
    if fuzzy:
        return fuzzy[0]
    contained = contains_match(query, results)
    if contained:
        return contained[0]
    return results[0]


class LocationResolver:
    """Maps a theatre name or slug to a stored Location.

    Lookups are cached per instance. The cache lives as long as the
    resolver, which is one process invocation. Across runs, a query the
    catalog has resolved once is remembered as an alias in the store.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        db: ShowtimeDatabase,
        threshold: float = 0.6,
    ) -> None:
        self.catalog = catalog
        self.db = db
        self.threshold = threshold
        self._cache: dict[str, Location] = {}

    def resolve(self, name_or_slug: str) -> Location | None:
        """Cache, then stored theatres, then the catalog. None if unknown."""
        query = name_or_slug.strip()
        if not query:
            return None
        cache_key = query.lower()

        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        location = self._from_store(query)
        if location is None:
            found = self._from_catalog(query)
            if found is None:
                logger.warning("Theatre not found: %s", query)
                return None
            location = self.db.upsert_location(found)
            self.db.set_location_alias(query, location.id)
            logger.info(
                "Theatre found: %s (ID: %s)",
                location.name,
                location.id,
                extra={"location": location.name},
            )

        self._cache[cache_key] = location
        return location

    def require(self, name_or_slug: str) -> Location:
        location = self.resolve(name_or_slug)
        if location is None:
            raise LocationNotFoundError(name_or_slug)
        return location

    def _from_store(self, query: str) -> Location | None:
        # exact hits only: every AMC theatre name looks alike to a fuzzy scorer
        if looks_like_slug(query):
            row = self.db.get_location_by_slug(query.lower())
            if row is not None:
                return row
        row = self.db.find_location_by_name(query)
        if row is not None:
            return row
        return self.db.get_location_alias(query)

    def _from_catalog(self, query: str) -> CatalogLocation | None:
        if looks_like_slug(query):
            try:
                logger.info("Attempting direct slug lookup: %s", query)
                return self.catalog.get_location_by_slug(query)
            except FATAL_UPSTREAM_ERRORS:
                raise
            except CatalogError as e:
                logger.info("Direct slug lookup failed (%s), falling back to search", e)

        logger.info("Searching theatres by name: %s", query)
        return pick_location(query, self.catalog.search_locations(query), self.threshold)


def resolve_titles(
    catalog_titles: Sequence[CatalogTitle],
    movie_name: str,
    threshold: float,
) -> list[CatalogTitle]:
    """Catalog movies matching one watchlist entry, best first.

    ``catalog_titles`` is the snapshot fetched once for the whole run.
    An empty result is normal and just means nothing is listed yet.
    """
    return match(movie_name, catalog_titles, threshold)
