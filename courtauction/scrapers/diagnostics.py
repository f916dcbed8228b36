"""
Diagnostic capture for empty or failed runs.

Files for a run land in ``<diagnostics_dir>/<run_id>/``:

- ``screenshot.png``  full-page screenshot
- ``page.html``       markup snapshot
- ``network.json``    JSON array of CapturedRequest
- ``reason.json``     why the capture fired and the run state at the time

Every step is best-effort: a failure is logged and the next step still runs,
so a broken page never hides the error that triggered the capture.
"""

import json
from pathlib import Path
from typing import Optional

from loguru import logger

from courtauction.models import DiagnosticReport
from courtauction.scrapers.network_recorder import NetworkRecorder
from courtauction.scrapers.session import Session

SCREENSHOT_FILE = "screenshot.png"
PAGE_HTML_FILE = "page.html"
NETWORK_LOG_FILE = "network.json"
REASON_FILE = "reason.json"


class DiagnosticCapture:
    def __init__(self, base_dir: Path, run_id: str):
        self.directory = Path(base_dir) / run_id
        self.run_id = run_id
        self.report: Optional[DiagnosticReport] = None

    @property
    def fired(self) -> bool:
        return self.report is not None

    async def capture(
        self,
        reason: str,
        session: Optional[Session] = None,
        recorder: Optional[NetworkRecorder] = None,
        state: Optional[str] = None,
    ) -> Optional[DiagnosticReport]:
        if self.fired:
            logger.debug("Diagnostics already captured for run {run_id}; ignoring '{reason}'", run_id=self.run_id, reason=reason)
            return self.report

        report = DiagnosticReport(run_id=self.run_id, reason=reason, directory=str(self.directory))
        self.report = report
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Cannot create diagnostics directory {dir}: {err}", dir=self.directory, err=exc)
            return report

        logger.warning("Capturing diagnostics for run {run_id}: {reason}", run_id=self.run_id, reason=reason)
        if session is not None:
            report.screenshot_path = await self._screenshot(session)
            report.page_html_path = await self._page_html(session)
        if recorder is not None:
            report.network_log_path = self._network_log(recorder)
        report.reason_path = self._reason(reason, state)
        return report

    async def _screenshot(self, session: Session) -> Optional[str]:
        path = self.directory / SCREENSHOT_FILE
        try:
            await session.page.screenshot(path=str(path), full_page=True)
            return str(path)
        except Exception as e:
            logger.warning(f"Failed to capture screenshot: {e}")
            return None

    async def _page_html(self, session: Session) -> Optional[str]:
        path = self.directory / PAGE_HTML_FILE
        try:
            path.write_text(await session.page.content(), encoding="utf-8")
            return str(path)
        except Exception as e:
            logger.warning(f"Failed to save page snapshot: {e}")
            return None

    def _network_log(self, recorder: NetworkRecorder) -> Optional[str]:
        try:
            return str(recorder.flush(self.directory / NETWORK_LOG_FILE))
        except Exception as e:
            logger.warning(f"Failed to write network log: {e}")
            return None

    def _reason(self, reason: str, state: Optional[str]) -> Optional[str]:
        path = self.directory / REASON_FILE
        try:
            payload = {"run_id": self.run_id, "reason": reason, "state": state}
            path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            return str(path)
        except Exception as e:
            logger.warning(f"Failed to write diagnostic reason: {e}")
            return None
