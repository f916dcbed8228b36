from __future__ import annotations

from datetime import UTC, date, datetime

# Date format used by the court auction site in form inputs and result cells.
SITE_DATE_FORMAT = "%Y.%m.%d"


def now_utc() -> datetime:
    """Return timezone-aware UTC timestamp."""
    return datetime.now(tz=UTC)


def format_site_date(value: date) -> str:
    """Render a date the way the site expects it (``2025.01.31``)."""
    return value.strftime(SITE_DATE_FORMAT)


def run_timestamp() -> str:
    """Timestamp string for run ids and filenames."""
    return now_utc().strftime("%Y%m%d_%H%M%S")
