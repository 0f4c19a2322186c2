"""Exception hierarchy shared by the monitor, catalog client and CLI."""


class MonitorError(Exception):
    """Base class for all errors raised by showtime_monitor."""


class ConfigError(MonitorError):
    """Missing or invalid configuration. Always fatal."""


class NotFoundError(MonitorError):
    """A location or title could not be resolved."""


class LocationNotFoundError(NotFoundError):
    def __init__(self, query: str) -> None:
        super().__init__(f"Theatre not found: {query}")
        self.query = query


class CatalogError(MonitorError):
    """The theatre catalog API failed or returned something unusable."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(CatalogError):
    def __init__(self) -> None:
        super().__init__(
            "Rate limited by AMC API. Please reduce polling frequency.",
            status_code=429,
        )


class CatalogAuthError(CatalogError):
    def __init__(self, status_code: int = 401) -> None:
        super().__init__(
            "Invalid AMC API key or access denied.", status_code=status_code
        )


class CatalogNotFoundError(CatalogError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=404)


class MalformedResponseError(CatalogError):
    """The catalog JSON did not have the expected shape."""


class MessagingError(MonitorError):
    """Sending a message through the messaging channel failed."""


# Upstream conditions where continuing the run would only make things worse.
FATAL_UPSTREAM_ERRORS = (RateLimitedError, CatalogAuthError)
