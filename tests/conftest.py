from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from loguru import logger

from courtauction.config import ScraperSettings
from courtauction.models import SearchCriteria


@pytest.fixture
def settings(tmp_path: Path) -> ScraperSettings:
    return ScraperSettings(
        diagnostics_dir=tmp_path / "diagnostics",
        capture_dir=tmp_path / "captures",
        nav_retry_backoff_s=0,
        network_drain_timeout_s=0.5,
    )


@pytest.fixture
def busan_criteria() -> SearchCriteria:
    return SearchCriteria(court="부산지방법원", date_from=date(2025, 1, 1), date_to=date(2025, 1, 31))


@pytest.fixture
def log_messages():
    """Collect loguru records emitted during a test."""
    records: list = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
