"""AMC Theatres API client.

Thin blocking wrapper around ``requests``. It only fetches and validates:
matching, dedup and notification decisions happen elsewhere.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import requests

from showtime_monitor import __version__
from showtime_monitor.catalog.models import (
    CatalogLocation,
    CatalogShowtime,
    CatalogTitle,
    embedded_list,
)
from showtime_monitor.errors import (
    CatalogAuthError,
    CatalogError,
    CatalogNotFoundError,
    MalformedResponseError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://api.amctheatres.com/v2"
TICKET_URL = "https://www.amctheatres.com/showtimes/{id}/seats"

PAGE_SIZE = 1000

# Catalog views merged into one snapshot per run
MOVIE_VIEWS = (
    ("advance", "/movies/views/advance"),
    ("now-playing", "/movies/views/now-playing"),
    ("coming-soon", "/movies/views/coming-soon"),
)


class CatalogClient:
    """Blocking client for the AMC v2 API."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        base_url: str = BASE_URL,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "X-AMC-Vendor-Key": api_key,
            "User-Agent": f"AMC-Showtime-Monitor/{__version__}",
            "Accept": "application/json",
        })

    def _get(self, path: str, params: dict | None = None):
        url = f"{self.base_url}{path}"
        try:
            res = self._session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise CatalogError(f"Timed out after {self.timeout}s: GET {path}") from e
        except requests.RequestException as e:
            raise CatalogError(f"Request failed: GET {path}: {e}") from e

        status = res.status_code
        if status == 429:
            raise RateLimitedError()
        if status in (401, 403):
            raise CatalogAuthError(status)
        if status == 404:
            raise CatalogNotFoundError(f"Not found: GET {path}")
        if status >= 400:
            raise CatalogError(f"HTTP {status} from GET {path}", status_code=status)

        try:
            return res.json()
        except ValueError as e:
            raise MalformedResponseError(f"Invalid JSON from GET {path}") from e

    # -- theatres ----------------------------------------------------------

    def get_location_by_slug(self, slug: str) -> CatalogLocation:
        """Direct lookup. Raises CatalogNotFoundError for unknown slugs."""
        return CatalogLocation.from_json(self._get(f"/theatres/{slug}"))

    def search_locations(self, name: str) -> list[CatalogLocation]:
        payload = self._get("/theatres", params={"name": name})
        theatres = [CatalogLocation.from_json(t) for t in embedded_list(payload, "theatres")]
        logger.debug("Found %d theatres matching name search %r", len(theatres), name)
        return theatres

    # -- movies ------------------------------------------------------------

    def list_titles(self, path: str) -> list[CatalogTitle]:
        payload = self._get(path, params={"page-size": PAGE_SIZE})
        return [CatalogTitle.from_json(m) for m in embedded_list(payload, "movies")]

    def list_all_titles(self) -> list[CatalogTitle]:
        """Every movie in the advance, now-playing and coming-soon views.

        A failing view is skipped unless the failure is a rate limit or an
        auth problem, which would only repeat on the next view.
        """
        titles: dict[int, CatalogTitle] = {}
        for view_name, path in MOVIE_VIEWS:
            try:
                movies = self.list_titles(path)
            except (RateLimitedError, CatalogAuthError):
                raise
            except CatalogError:
                logger.exception("Failed to fetch %s movies, continuing", view_name)
                continue
            logger.info("Found %d %s movies", len(movies), view_name)
            for movie in movies:
                titles.setdefault(movie.id, movie)
        logger.info("Total unique movies: %d", len(titles))
        return list(titles.values())

    # -- showtimes ---------------------------------------------------------

    def list_showtimes(
        self, title_id: int, location_id: int, now: datetime | None = None
    ) -> list[CatalogShowtime]:
        """Upcoming showtimes for one movie at one theatre.

        Showtimes starting at or before ``now`` are dropped here, so the
        store never sees expired showings. A 404 means "no showtimes".
        """
        try:
            payload = self._get(
                f"/theatres/{location_id}/showtimes",
                params={"movie-id": title_id, "page-size": PAGE_SIZE},
            )
        except CatalogNotFoundError:
            logger.info(
                "No showtimes available for movie %s at theatre %s",
                title_id,
                location_id,
            )
            return []

        showtimes = [CatalogShowtime.from_json(s) for s in embedded_list(payload, "showtimes")]
        cutoff = now or datetime.now(timezone.utc)
        upcoming = [s for s in showtimes if s.start_utc > cutoff]
        logger.debug(
            "%d of %d showtimes are upcoming (movie %s, theatre %s)",
            len(upcoming),
            len(showtimes),
            title_id,
            location_id,
        )
        return upcoming

    @staticmethod
    def ticket_url(showtime: CatalogShowtime) -> str:
        return TICKET_URL.format(id=showtime.id)

    def close(self) -> None:
        self._session.close()
