from enum import Enum

from loguru import logger
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from courtauction.config import ScraperSettings
from courtauction.errors import CourtNotFound, SearchControlNotFound
from courtauction.models import SearchCriteria
from courtauction.scrapers.layout import DEFAULT_LAYOUT, SiteLayout
from courtauction.scrapers.session import Session
from courtauction.utils.time import format_site_date


class SearchOutcome(str, Enum):
    RESULTS_READY = "results_ready"
    EMPTY = "empty"


class SearchFormNavigator:
    """Fills and submits the court / sale-date search form."""

    def __init__(self, settings: ScraperSettings, layout: SiteLayout = DEFAULT_LAYOUT):
        self.settings = settings
        self.layout = layout

    async def search(self, session: Session, criteria: SearchCriteria) -> SearchOutcome:
        page = session.page
        await self.select_court(page, criteria.court)
        await self._select_all_property_types(page)
        await self._fill_date_range(page, criteria)
        await self._submit(page)
        await session.wait_ready(self.settings.ready_timeout_ms)
        return await self._wait_for_results(page, criteria)

    async def select_court(self, page, court: str) -> None:
        """Select ``court`` in the court dropdown by exact option label."""
        select = page.locator(self.layout.court_select)
        if await select.count() == 0:
            raise CourtNotFound(court, f"court select control missing ({self.layout.court_select})")

        labels = await select.first.locator(self.layout.court_option).all_inner_texts()
        matches = [label.strip() for label in labels if label.strip() == court]
        if not matches:
            logger.warning(
                "Court {court} not among {count} options on the search form",
                court=court,
                count=len(labels),
            )
            raise CourtNotFound(court, "no option with that exact label")

        await select.first.select_option(label=matches[0], timeout=self.settings.action_timeout_ms)
        logger.info("Selected court {court}", court=court)

    async def _select_all_property_types(self, page) -> None:
        radio = page.locator(self.layout.property_type_all)
        if await radio.count() == 0:
            logger.debug("No 'all property types' control; keeping the form default")
            return
        await radio.first.click(timeout=self.settings.action_timeout_ms)

    async def _fill_date_range(self, page, criteria: SearchCriteria) -> None:
        for control, selector, value in (
            ("date_from", self.layout.date_from_input, criteria.date_from),
            ("date_to", self.layout.date_to_input, criteria.date_to),
        ):
            field = page.locator(selector)
            if await field.count() == 0:
                raise SearchControlNotFound(control, selector)
            await field.first.fill(format_site_date(value), timeout=self.settings.action_timeout_ms)
        logger.info(
            "Sale date range set to {start} ~ {end}",
            start=format_site_date(criteria.date_from),
            end=format_site_date(criteria.date_to),
        )

    async def _submit(self, page) -> None:
        button = page.locator(self.layout.submit)
        if await button.count() == 0:
            raise SearchControlNotFound("submit", self.layout.submit)
        await button.first.click(timeout=self.settings.action_timeout_ms)

    async def _wait_for_results(self, page, criteria: SearchCriteria) -> SearchOutcome:
        try:
            await page.wait_for_selector(self.layout.results_table, timeout=self.settings.results_timeout_ms)
        except PlaywrightTimeoutError:
            # No table is how the site says "nothing scheduled", not a broken page.
            logger.info(
                "No results table within {ms} ms for {query}",
                ms=self.settings.results_timeout_ms,
                query=criteria.describe(),
            )
            return SearchOutcome.EMPTY
        return SearchOutcome.RESULTS_READY
