"""Logging setup and the per-run log that is persisted to the database.

Every record logged under ``showtime_monitor`` during a run is buffered by
``RunLogHandler`` and written to the ``logs`` table when the run ends, all
tagged with one run id. Pass ``extra={"title": ..., "location": ...}`` on a
log call to attach the movie or theatre it is about.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from showtime_monitor.store.database import ShowtimeDatabase
from showtime_monitor.store.models import RunLogEntry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PACKAGE_LOGGER = "showtime_monitor"

# Python level names -> names stored in the logs table
_LEVEL_NAMES = {"WARNING": "WARN", "CRITICAL": "ERROR"}


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        format=LOG_FORMAT,
        level=logging.DEBUG if verbose else logging.INFO,
    )
    # python-telegram-bot logs every HTTP request at INFO through httpx
    for noisy in ("httpx", "telegram", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class RunLogHandler(logging.Handler):
    """Buffers one run's log records for the database."""

    def __init__(self, run_id: str | None = None, level: int = logging.INFO) -> None:
        super().__init__(level=level)
        self.run_id = run_id or str(uuid.uuid4())
        self._buffer: list[RunLogEntry] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        self._buffer.append(
            RunLogEntry(
                run_id=self.run_id,
                timestamp=datetime.fromtimestamp(record.created, timezone.utc).replace(tzinfo=None),
                level=_LEVEL_NAMES.get(record.levelname, record.levelname),
                message=message,
                title=getattr(record, "title", None),
                location=getattr(record, "location", None),
            )
        )

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def flush_to(self, db: ShowtimeDatabase) -> int:
        """Write buffered records. Failures are logged, never raised."""
        entries, self._buffer = self._buffer, []
        if not entries:
            return 0
        try:
            db.add_logs(entries)
        except SQLAlchemyError:
            logger.exception("Failed to save %d run log entries", len(entries))
            return 0
        return len(entries)

    def install(self) -> RunLogHandler:
        logging.getLogger(PACKAGE_LOGGER).addHandler(self)
        return self

    def uninstall(self) -> None:
        logging.getLogger(PACKAGE_LOGGER).removeHandler(self)
