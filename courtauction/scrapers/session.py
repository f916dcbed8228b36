"""
Browser session ownership.

One ``Session`` per run. The controller opens it as an async context manager so
the page, context, browser and Playwright driver are released on every exit
path, and it turns Playwright errors into the scraper's own error taxonomy.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright
from playwright_stealth import Stealth

from courtauction.config import ScraperSettings
from courtauction.errors import FatalScraperError, NavigationError, NavigationTimeout, SessionCrashed
from courtauction.utils.time import run_timestamp

SANDBOX_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]
BLOCKED_RESOURCE_TYPES = {"image", "font", "media"}
CRASH_MARKERS = ("crash", "target closed", "has been closed", "browser has disconnected")

ReadinessSignal = Callable[[Any, int], Awaitable[None]]


async def network_idle(page, timeout_ms: int) -> None:
    """Default readiness signal: wait for ``networkidle``, soft on timeout."""
    try:
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)
    except PlaywrightTimeoutError:
        # DOM is already loaded at this point; long-polling pages never go idle.
        logger.debug("networkidle not reached within {ms} ms, continuing", ms=timeout_ms)


async def apply_stealth(page):
    """Apply stealth settings to a page to avoid bot detection."""
    await Stealth().apply_stealth_async(page)


def new_run_id() -> str:
    return f"{run_timestamp()}_{uuid.uuid4().hex[:8]}"


def classify_playwright_error(exc: Exception, url: str) -> FatalScraperError:
    """Map a Playwright error onto SessionCrashed / NavigationError."""
    message = str(exc)
    if any(marker in message.lower() for marker in CRASH_MARKERS):
        return SessionCrashed(f"Session crashed while loading {url}: {message}")
    return NavigationError(url, f"Navigation to {url} failed: {message}")


@dataclass
class Session:
    """Handle to one browser page plus everything needed to release it."""

    page: Any
    run_id: str
    context: Any = None
    browser: Any = None
    ready: ReadinessSignal = network_idle
    crashed: bool = field(default=False)

    def mark_crashed(self, *_args: Any) -> None:
        if not self.crashed:
            logger.error("Browser page crashed during run {run_id}", run_id=self.run_id)
        self.crashed = True

    async def wait_ready(self, timeout_ms: int) -> None:
        await self.ready(self.page, timeout_ms)


class SessionController:
    def __init__(
        self,
        settings: ScraperSettings,
        ready: ReadinessSignal = network_idle,
        stealth: bool = True,
    ):
        self.settings = settings
        self.ready = ready
        self.stealth = stealth

    @asynccontextmanager
    async def open(self, run_id: Optional[str] = None) -> AsyncIterator[Session]:
        run_id = run_id or new_run_id()
        try:
            playwright = await async_playwright().start()
        except PlaywrightError as exc:
            raise SessionCrashed(f"Could not start Playwright driver: {exc}") from exc
        browser = context = page = None
        try:
            try:
                browser = await playwright.chromium.launch(
                    headless=self.settings.headless,
                    args=SANDBOX_ARGS,
                )
                context = await browser.new_context(
                    user_agent=self.settings.user_agent,
                    viewport={"width": 1920, "height": 1080},
                    locale="ko-KR",
                    timezone_id="Asia/Seoul",
                )
                context.set_default_navigation_timeout(self.settings.navigation_timeout_ms)
                context.set_default_timeout(self.settings.action_timeout_ms)
                page = await context.new_page()
                if self.stealth:
                    await apply_stealth(page)
                if self.settings.block_resources:
                    await page.route("**/*", _block_heavy_resources)
            except PlaywrightError as exc:
                raise SessionCrashed(f"Could not start browser session: {exc}") from exc

            session = Session(page=page, run_id=run_id, context=context, browser=browser, ready=self.ready)
            page.on("crash", session.mark_crashed)
            logger.info("Browser session {run_id} opened (headless={headless})", run_id=run_id, headless=self.settings.headless)
            yield session
        finally:
            await self._release(run_id, playwright, browser, context, page)

    async def _release(self, run_id: str, playwright, browser, context, page) -> None:
        for name, resource in (("page", page), ("context", context), ("browser", browser)):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as exc:
                logger.warning("Failed to close {name} for run {run_id}: {err}", name=name, run_id=run_id, err=exc)
        try:
            await playwright.stop()
        except Exception as exc:
            logger.warning("Failed to stop Playwright for run {run_id}: {err}", run_id=run_id, err=exc)
        logger.info("Browser session {run_id} closed", run_id=run_id)

    async def navigate(self, session: Session, url: str) -> None:
        """Load ``url`` and wait for the readiness signal."""
        if session.crashed:
            raise SessionCrashed(f"Session {session.run_id} already crashed")
        timeout_ms = self.settings.navigation_timeout_ms
        logger.info("Visiting {url}", url=url)
        try:
            await session.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(url, timeout_ms) from exc
        except PlaywrightError as exc:
            raise classify_playwright_error(exc, url) from exc
        if session.crashed:
            raise SessionCrashed(f"Session {session.run_id} crashed while loading {url}")
        await session.wait_ready(self.settings.ready_timeout_ms)

    async def navigate_with_retry(self, session: Session, url: str) -> None:
        """Navigate, retrying once after a backoff when the first attempt times out."""
        try:
            await self.navigate(session, url)
        except NavigationTimeout as exc:
            backoff = self.settings.nav_retry_backoff_s
            logger.warning("{err}; retrying once in {backoff}s", err=exc, backoff=backoff)
            await asyncio.sleep(backoff)
            await self.navigate(session, url)


async def _block_heavy_resources(route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()
