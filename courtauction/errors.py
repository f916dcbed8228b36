"""Scraper exception hierarchy.

Two families matter to the run orchestrator:

- ``FatalScraperError``: the session is unusable; the run aborts and the error
  propagates to the caller.
- ``StructuralError``: the page did not look the way the site layout declares;
  the run degrades to an empty result and a diagnostic capture.

Per-field data quality problems are not exceptions at all; they are recorded as
``ParseFailure`` entries by the normalizer.
"""


class ScraperError(Exception):
    """Base class for court auction scraper errors."""

    kind = "scraper_error"


class FatalScraperError(ScraperError):
    """Raised when the browser session cannot continue."""

    kind = "fatal"


class NavigationError(FatalScraperError):
    """Raised when navigation fails for a reason other than a timeout."""

    kind = "navigation_error"

    def __init__(self, url: str, message: str = ""):
        self.url = url
        super().__init__(message or f"Navigation to {url} failed")


class NavigationTimeout(NavigationError):
    """Raised when a page did not become ready within the navigation timeout."""

    kind = "navigation_timeout"

    def __init__(self, url: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(url, f"Navigation to {url} timed out after {timeout_ms} ms")


class SessionCrashed(FatalScraperError):
    """Raised when the page or browser crashed or was closed underneath us."""

    kind = "session_crashed"


class StructuralError(ScraperError):
    """Raised when an expected page control or table shape is missing."""

    kind = "structural"


class CourtNotFound(StructuralError):
    """Raised when the court select control or the court option is absent."""

    kind = "court_not_found"

    def __init__(self, court: str, detail: str = ""):
        self.court = court
        message = f"Court '{court}' not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SearchControlNotFound(StructuralError):
    """Raised when a search form control (submit, date inputs) is absent."""

    kind = "search_control_not_found"

    def __init__(self, control: str, selector: str):
        self.control = control
        self.selector = selector
        super().__init__(f"Search control '{control}' not found (selector: {selector})")


class ColumnMapMismatch(StructuralError):
    """Raised when the results table header no longer matches the column map."""

    kind = "column_map_mismatch"

    def __init__(self, column: str, expected: str, found: str | None):
        self.column = column
        self.expected = expected
        self.found = found
        super().__init__(
            f"Column '{column}' expected header containing '{expected}', found '{found}'"
        )
