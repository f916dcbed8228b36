import asyncio
import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

from bs4 import BeautifulSoup
from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from courtauction.config import ScraperSettings
from courtauction.errors import ColumnMapMismatch
from courtauction.models import RawRow
from courtauction.scrapers.layout import DEFAULT_COLUMN_MAP, DEFAULT_LAYOUT, ColumnMap, SiteLayout
from courtauction.scrapers.session import Session, classify_playwright_error
from courtauction.utils.logging_utils import Timer, log_harvest

_WHITESPACE = re.compile(r"\s+")

STOP_LAST_PAGE = "last_page"
STOP_PAGE_CAP = "page_cap"
STOP_STUCK = "stuck_pagination"
STOP_NO_NEXT_CONTROL = "no_next_control"
STOP_CANCELLED = "cancelled"


def clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def page_fingerprint(rows: List[RawRow]) -> str:
    """Stable hash of a page's row contents (page numbers excluded)."""
    payload = json.dumps([row.cells for row in rows], ensure_ascii=False, sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ResultPager(Protocol):
    async def content(self) -> str: ...

    async def next_page(self) -> bool: ...


@dataclass(slots=True)
class PaginationResult:
    rows: List[RawRow] = field(default_factory=list)
    pages: int = 0
    stop_reason: str = STOP_LAST_PAGE

    @property
    def cancelled(self) -> bool:
        return self.stop_reason == STOP_CANCELLED


class ResultSetParser:
    """Turns results-table markup into ``RawRow`` objects via the column map."""

    def __init__(self, column_map: ColumnMap = DEFAULT_COLUMN_MAP, layout: SiteLayout = DEFAULT_LAYOUT):
        self.column_map = column_map
        self.layout = layout

    def parse_page(self, markup: str, page: int = 1) -> Tuple[List[RawRow], bool]:
        soup = BeautifulSoup(markup or "", "html.parser")
        rows: List[RawRow] = []

        table = soup.select_one(self.layout.results_table)
        if table is not None:
            self._check_header(table)
            for tr in table.select(self.layout.body_rows):
                if tr.find_parent("thead") is not None:
                    continue
                tds = tr.find_all("td")
                # Header rows have no td; single-cell rows are colspan notices.
                if len(tds) < 2:
                    continue
                cells = [clean_text(td.get_text(" ")) for td in tds]
                rows.append(RawRow(cells=self.column_map.extract(cells), page=page, index=len(rows)))
        elif self.layout.no_results_text in soup.get_text():
            logger.debug("Page {page} reports no results", page=page)

        return rows, self._has_next(soup)

    def _check_header(self, table) -> None:
        header = table.select_one(self.layout.header_row)
        if header is None:
            header = next((tr for tr in table.find_all("tr") if tr.find("th")), None)
        if header is None:
            return

        titles = [clean_text(th.get_text(" ")) for th in header.find_all(["th", "td"])]
        columns = self.column_map.columns()
        for name, label in self.column_map.header_labels.items():
            if name not in columns:
                continue
            index = columns[name]
            found = titles[index] if index < len(titles) else None
            if found is None or label not in found:
                raise ColumnMapMismatch(name, label, found)

    def _has_next(self, soup: BeautifulSoup) -> bool:
        link = soup.select_one(self.layout.next_page)
        if link is None:
            return False
        if self.layout.disabled_class in (link.get("class") or []):
            return False
        return not (link.get("href") == "#" and not link.get("onclick"))

    async def collect(
        self,
        pager: ResultPager,
        page_cap: int,
        cancel: Optional[asyncio.Event] = None,
        query: str = "",
    ) -> PaginationResult:
        """Walk result pages until the last page, the cap, a repeat page or cancellation."""
        result = PaginationResult()
        previous: Optional[str] = None

        while True:
            with Timer() as timer:
                markup = await pager.content()
                rows, has_next = self.parse_page(markup, page=result.pages + 1)
            result.pages += 1

            fingerprint = page_fingerprint(rows)
            if previous is not None and fingerprint == previous:
                logger.warning(
                    "Page {page} repeats the previous page; stopping pagination",
                    page=result.pages,
                )
                result.stop_reason = STOP_STUCK
                break
            previous = fingerprint
            result.rows.extend(rows)
            log_harvest(
                stage="results_page",
                query=query,
                rows=len(rows),
                duration_ms=timer.elapsed_ms,
                page=result.pages,
            )

            if not has_next:
                result.stop_reason = STOP_LAST_PAGE
                break
            if result.pages >= page_cap:
                logger.info("Reached page cap ({cap}) for {query}", cap=page_cap, query=query)
                result.stop_reason = STOP_PAGE_CAP
                break
            if cancel is not None and cancel.is_set():
                logger.info("Cancellation requested after page {page}", page=result.pages)
                result.stop_reason = STOP_CANCELLED
                break
            if not await pager.next_page():
                result.stop_reason = STOP_NO_NEXT_CONTROL
                break

        return result


class BrowserPager:
    """``ResultPager`` backed by the live session page."""

    def __init__(self, session: Session, settings: ScraperSettings, layout: SiteLayout = DEFAULT_LAYOUT):
        self.session = session
        self.settings = settings
        self.layout = layout

    async def content(self) -> str:
        return await self.session.page.content()

    async def next_page(self) -> bool:
        page = self.session.page
        links = page.locator(self.layout.next_page)
        if await links.count() == 0:
            return False
        link = links.first
        css_class = await link.get_attribute("class") or ""
        if self.layout.disabled_class in css_class.split():
            return False
        try:
            await link.click(timeout=self.settings.action_timeout_ms)
        except PlaywrightTimeoutError as exc:
            logger.warning("Next-page control did not respond: {err}", err=exc)
            return False
        except PlaywrightError as exc:
            raise classify_playwright_error(exc, page.url) from exc
        await self.session.wait_ready(self.settings.ready_timeout_ms)
        return True
