"""
Court auction scraper: one run = one session, one search, every result page.

State machine::

    idle -> session_open -> searching -> {results_ready | empty_result | search_failed}
         -> paginating* -> normalizing -> done

Any non-terminal state can pass through diagnostic_capture on its way to
done/failed. Structural problems (court missing, control missing, column drift)
end the run with zero records; session crashes and navigation failures are
re-raised after diagnostics are written.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set, Tuple

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from courtauction.config import ScraperSettings, load_settings
from courtauction.errors import FatalScraperError, StructuralError
from courtauction.models import (
    DiagnosticReport,
    ParseFailure,
    PropertyRecord,
    RawRow,
    RunOutcome,
    RunResult,
    RunState,
    SearchCriteria,
)
from courtauction.scrapers.diagnostics import DiagnosticCapture
from courtauction.scrapers.layout import DEFAULT_COLUMN_MAP, DEFAULT_LAYOUT, ColumnMap, SiteLayout
from courtauction.scrapers.network_recorder import NetworkRecorder
from courtauction.scrapers.normalizer import FieldNormalizer
from courtauction.scrapers.result_parser import BrowserPager, ResultSetParser
from courtauction.scrapers.search_form import SearchFormNavigator, SearchOutcome
from courtauction.scrapers.session import Session, SessionController, classify_playwright_error, new_run_id
from courtauction.utils.logging_utils import bind_run, log_harvest

NETWORK_LOG_FILE = "network.json"

RecorderFactory = Callable[[ScraperSettings], NetworkRecorder]


@dataclass(slots=True)
class RunContext:
    """Mutable state of a single run; never shared between runs."""

    run_id: str
    criteria: SearchCriteria
    state: RunState = RunState.IDLE
    history: List[RunState] = field(default_factory=list)
    session: Optional[Session] = None
    recorder: Optional[NetworkRecorder] = None
    diagnostics: Optional[DiagnosticCapture] = None

    def __post_init__(self) -> None:
        self.history.append(self.state)

    @property
    def log(self):
        return bind_run(self.run_id, court=self.criteria.court, state=self.state.value)

    def transition(self, state: RunState) -> None:
        previous = self.state
        self.state = state
        self.history.append(state)
        self.log.debug("Run state {previous} -> {current}", previous=previous.value, current=state.value)


class CourtAuctionScraper:
    """Wires session, search form, parser, normalizer, recorder and diagnostics together."""

    def __init__(
        self,
        settings: Optional[ScraperSettings] = None,
        session_controller: Optional[SessionController] = None,
        navigator: Optional[SearchFormNavigator] = None,
        parser: Optional[ResultSetParser] = None,
        column_map: ColumnMap = DEFAULT_COLUMN_MAP,
        layout: SiteLayout = DEFAULT_LAYOUT,
        recorder_factory: Optional[RecorderFactory] = None,
    ):
        self.settings = settings or load_settings()
        self.column_map = column_map
        self.layout = layout
        self.session_controller = session_controller or SessionController(self.settings)
        self.navigator = navigator or SearchFormNavigator(self.settings, layout)
        self.parser = parser or ResultSetParser(column_map, layout)
        self.recorder_factory = recorder_factory or NetworkRecorder.from_settings

    async def run(
        self,
        criteria: SearchCriteria,
        cancel: Optional[asyncio.Event] = None,
        run_id: Optional[str] = None,
    ) -> RunResult:
        ctx = RunContext(run_id=run_id or new_run_id(), criteria=criteria)
        ctx.diagnostics = DiagnosticCapture(self.settings.diagnostics_dir, ctx.run_id)
        if self.settings.capture_network:
            ctx.recorder = self.recorder_factory(self.settings)
        ctx.log.info("Starting run {run_id} for {query}", run_id=ctx.run_id, query=criteria.describe())

        try:
            async with self.session_controller.open(ctx.run_id) as session:
                ctx.session = session
                ctx.transition(RunState.SESSION_OPEN)
                if ctx.recorder is not None:
                    ctx.recorder.attach(session.page)
                try:
                    return await self._run_in_session(ctx, cancel)
                except StructuralError as exc:
                    return await self._search_failed(ctx, exc)
                except FatalScraperError as exc:
                    await self._fail(ctx, exc)
                    raise
                except PlaywrightError as exc:
                    error = classify_playwright_error(exc, session.page.url)
                    await self._fail(ctx, error)
                    raise error from exc
                except Exception as exc:
                    await self._fail(ctx, exc)
                    raise
                finally:
                    await self._close_recorder(ctx)
        except Exception as exc:
            # Session never opened, or closing it failed
            if ctx.state is not RunState.FAILED:
                await self._fail(ctx, exc)
            raise

    async def _run_in_session(self, ctx: RunContext, cancel: Optional[asyncio.Event]) -> RunResult:
        session = ctx.session
        criteria = ctx.criteria
        await self.session_controller.navigate_with_retry(session, self.settings.search_url)

        ctx.transition(RunState.SEARCHING)
        outcome = await self.navigator.search(session, criteria)
        if outcome is SearchOutcome.EMPTY:
            ctx.transition(RunState.EMPTY_RESULT)
            return await self._finish(ctx, rows=[], pages=0, stop_reason="no_results_table")

        ctx.transition(RunState.RESULTS_READY)
        ctx.transition(RunState.PAGINATING)
        page_cap = criteria.page_cap or self.settings.max_pages
        pager = BrowserPager(session, self.settings, self.layout)
        pagination = await self.parser.collect(pager, page_cap, cancel=cancel, query=criteria.describe())
        return await self._finish(
            ctx,
            rows=pagination.rows,
            pages=pagination.pages,
            stop_reason=pagination.stop_reason,
            cancelled=pagination.cancelled,
        )

    async def _finish(
        self,
        ctx: RunContext,
        rows: List[RawRow],
        pages: int,
        stop_reason: str,
        cancelled: bool = False,
    ) -> RunResult:
        ctx.transition(RunState.NORMALIZING)
        source_url = ctx.session.page.url if ctx.session is not None else None
        records, failures, duplicates = self._normalize(ctx, rows, source_url)

        report = None
        if not records:
            report = await self._capture(ctx, f"no records harvested ({stop_reason})")

        if cancelled:
            outcome = RunOutcome.CANCELLED
        elif records:
            outcome = RunOutcome.DONE
        else:
            outcome = RunOutcome.EMPTY
        ctx.transition(RunState.DONE)

        log_harvest(
            stage="run",
            query=ctx.criteria.describe(),
            rows=len(rows),
            kept=len(records),
            run_id=ctx.run_id,
            pages=pages,
            failures=len(failures),
        )
        if failures:
            ctx.log.warning("{count} field-level parse failures in run {run_id}", count=len(failures), run_id=ctx.run_id)
        return RunResult(
            run_id=ctx.run_id,
            criteria=ctx.criteria,
            outcome=outcome,
            state=ctx.state,
            records=records,
            parse_failures=failures,
            pages_visited=pages,
            duplicates_dropped=duplicates,
            diagnostics=report,
            extra=self._extra(ctx, stop_reason),
        )

    def _normalize(
        self, ctx: RunContext, rows: List[RawRow], source_url: Optional[str]
    ) -> Tuple[List[PropertyRecord], List[ParseFailure], int]:
        normalizer = FieldNormalizer(self.column_map, court=ctx.criteria.court, source_url=source_url)
        records: List[PropertyRecord] = []
        failures: List[ParseFailure] = []
        seen: Set[Tuple[str, str]] = set()
        duplicates = 0

        for row in rows:
            normalized = normalizer.normalize(row)
            record = normalized.record
            # Rows without a case number cannot be keyed; keep them all.
            if record.case_number:
                if record.key in seen:
                    duplicates += 1
                    continue
                seen.add(record.key)
            records.append(record)
            failures.extend(normalized.failures)

        if duplicates:
            ctx.log.info("Dropped {count} duplicate rows", count=duplicates)
        return records, failures, duplicates

    async def _search_failed(self, ctx: RunContext, exc: StructuralError) -> RunResult:
        ctx.transition(RunState.SEARCH_FAILED)
        ctx.log.warning("Search failed ({kind}): {err}", kind=exc.kind, err=exc)
        report = await self._capture(ctx, f"{exc.kind}: {exc}")
        ctx.transition(RunState.DONE)
        return RunResult(
            run_id=ctx.run_id,
            criteria=ctx.criteria,
            outcome=RunOutcome.SEARCH_FAILED,
            state=ctx.state,
            diagnostics=report,
            error_kind=exc.kind,
            error_message=str(exc),
            extra=self._extra(ctx, "search_failed"),
        )

    async def _fail(self, ctx: RunContext, exc: Exception) -> None:
        kind = getattr(exc, "kind", type(exc).__name__)
        ctx.log.error("Run {run_id} failed ({kind}): {err}", run_id=ctx.run_id, kind=kind, err=exc)
        await self._capture(ctx, f"{kind}: {exc}")
        ctx.transition(RunState.FAILED)

    async def _capture(self, ctx: RunContext, reason: str) -> Optional[DiagnosticReport]:
        trigger_state = ctx.state
        ctx.transition(RunState.DIAGNOSTIC_CAPTURE)
        session = ctx.session
        if session is not None and session.crashed:
            # A crashed page cannot be screenshotted
            session = None
        return await ctx.diagnostics.capture(
            reason,
            session=session,
            recorder=ctx.recorder,
            state=trigger_state.value,
        )

    async def _close_recorder(self, ctx: RunContext) -> None:
        recorder = ctx.recorder
        if recorder is None:
            return
        await recorder.drain(self.settings.network_drain_timeout_s)
        recorder.detach()
        path = self.settings.capture_dir / ctx.run_id / NETWORK_LOG_FILE
        try:
            recorder.flush(path)
        except OSError as exc:
            logger.warning("Could not write network log {path}: {err}", path=path, err=exc)

    @staticmethod
    def _extra(ctx: RunContext, stop_reason: str) -> dict:
        extra = {
            "stop_reason": stop_reason,
            "states": [state.value for state in ctx.history],
        }
        if ctx.recorder is not None:
            extra["network_entries"] = len(ctx.recorder)
            extra["network_dropped"] = ctx.recorder.dropped
        return extra
