"""
Passive capture of API-looking network traffic during a run.

The results page is rendered from XHR/JSON calls the site makes behind the
form. Recording those exchanges is how we find a faster extraction path than
parsing markup; the markup parser stays the fallback.
"""

import asyncio
import json
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from loguru import logger

from courtauction.config import ScraperSettings
from courtauction.models import CapturedRequest

DEFAULT_PATTERNS = ("/api/", ".json", "ajax", "service", "search", "list")
JSON_CONTENT_TAG = "content-type:json"


class NetworkRecorder:
    def __init__(
        self,
        patterns: Iterable[str] = DEFAULT_PATTERNS,
        max_entries: int = 500,
        body_limit: int = 1000,
    ):
        self.patterns = tuple(p.lower() for p in patterns)
        self.max_entries = max_entries
        self.body_limit = body_limit
        self.dropped = 0
        self._entries: List[CapturedRequest] = []
        self._pending: Set[asyncio.Task] = set()
        self._page = None

    @classmethod
    def from_settings(cls, settings: ScraperSettings, patterns: Iterable[str] = DEFAULT_PATTERNS) -> "NetworkRecorder":
        return cls(patterns=patterns, max_entries=settings.network_max_entries, body_limit=settings.network_body_limit)

    @property
    def entries(self) -> Tuple[CapturedRequest, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def match(self, url: str, content_type: Optional[str] = None) -> Optional[str]:
        """Return the pattern tag ``url`` matched, or ``None``."""
        lowered = url.lower()
        for pattern in self.patterns:
            if pattern in lowered:
                return pattern
        if content_type and "json" in content_type.lower():
            return JSON_CONTENT_TAG
        return None

    def attach(self, page) -> None:
        page.on("response", self._on_response)
        page.on("requestfailed", self._on_request_failed)
        self._page = page
        logger.debug("Network recorder attached ({count} patterns)", count=len(self.patterns))

    def detach(self) -> None:
        if self._page is None:
            return
        self._page.remove_listener("response", self._on_response)
        self._page.remove_listener("requestfailed", self._on_request_failed)
        self._page = None

    def _has_room(self) -> bool:
        if len(self._entries) + len(self._pending) < self.max_entries:
            return True
        if self.dropped == 0:
            logger.warning("Network recorder full ({max} entries); further matches are dropped", max=self.max_entries)
        self.dropped += 1
        return False

    def _on_response(self, response) -> None:
        try:
            content_type = response.headers.get("content-type")
            pattern = self.match(response.url, content_type)
        except Exception as exc:
            logger.debug("Skipping response we could not inspect: {err}", err=exc)
            return
        if pattern is None or not self._has_room():
            return
        task = asyncio.ensure_future(self._record_response(response, pattern, content_type))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record_response(self, response, pattern: str, content_type: Optional[str]) -> None:
        request = response.request
        body = None
        try:
            body = await response.text()
        except Exception as exc:
            # Redirects and aborted loads have no body
            logger.debug("No body for {url}: {err}", url=response.url, err=exc)
        self._entries.append(
            CapturedRequest(
                url=response.url,
                method=request.method,
                pattern=pattern,
                status=response.status,
                resource_type=request.resource_type,
                content_type=content_type,
                request_body=self._truncate(request.post_data),
                response_body=self._truncate(body),
            )
        )

    def _on_request_failed(self, request) -> None:
        pattern = self.match(request.url)
        if pattern is None or not self._has_room():
            return
        self._entries.append(
            CapturedRequest(
                url=request.url,
                method=request.method,
                pattern=pattern,
                resource_type=request.resource_type,
                request_body=self._truncate(request.post_data),
                failure=request.failure,
            )
        )

    def _truncate(self, text: Optional[str]) -> Optional[str]:
        if text is None:
            return None
        return text[: self.body_limit]

    async def drain(self, timeout: float) -> None:
        """Wait (bounded) for in-flight body reads before a flush."""
        if not self._pending:
            return
        _done, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            logger.warning("Abandoning {count} unfinished network captures after {timeout}s", count=len(pending), timeout=timeout)
            for task in pending:
                task.cancel()

    def to_json(self) -> str:
        return json.dumps([entry.model_dump(mode="json") for entry in self._entries], ensure_ascii=False, indent=2)

    def flush(self, path: Path) -> Path:
        """Write the buffered log as a JSON array of CapturedRequest."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(self.to_json(), encoding="utf-8")
        tmp.replace(path)
        logger.info("Wrote {count} captured requests to {path}", count=len(self._entries), path=path)
        return path
