"""
Runtime configuration for the court auction scraper.

Defaults live as module constants; ``load_settings()`` overlays environment
variables (after loading ``.env``) and validates the result.
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Site endpoints
BASE_URL = "https://www.courtauction.go.kr"
SEARCH_PATH = "/RetrieveRealEstMulSrchInfo.laf"

# Timeouts (milliseconds)
NAVIGATION_TIMEOUT_MS = 60000
READY_TIMEOUT_MS = 15000
RESULTS_TIMEOUT_MS = 20000
ACTION_TIMEOUT_MS = 10000

# Pagination loop-guard
MAX_PAGES = 50

# Single navigation retry
NAV_RETRY_BACKOFF_S = 2.0

# Network capture
NETWORK_MAX_ENTRIES = 500
NETWORK_BODY_LIMIT = 1000
NETWORK_DRAIN_TIMEOUT_S = 5.0

# Output locations
DIAGNOSTICS_DIR = Path("logs/diagnostics")
CAPTURE_DIR = Path("data/captures")

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

TRUTHY = {"1", "true", "yes", "on"}


class ScraperSettings(BaseModel):
    base_url: str = BASE_URL
    search_path: str = SEARCH_PATH
    headless: bool = True
    navigation_timeout_ms: int = Field(default=NAVIGATION_TIMEOUT_MS, gt=0)
    ready_timeout_ms: int = Field(default=READY_TIMEOUT_MS, gt=0)
    results_timeout_ms: int = Field(default=RESULTS_TIMEOUT_MS, gt=0)
    action_timeout_ms: int = Field(default=ACTION_TIMEOUT_MS, gt=0)
    max_pages: int = Field(default=MAX_PAGES, ge=1)
    nav_retry_backoff_s: float = Field(default=NAV_RETRY_BACKOFF_S, ge=0)
    block_resources: bool = False
    capture_network: bool = True
    network_max_entries: int = Field(default=NETWORK_MAX_ENTRIES, ge=1)
    network_body_limit: int = Field(default=NETWORK_BODY_LIMIT, ge=0)
    network_drain_timeout_s: float = Field(default=NETWORK_DRAIN_TIMEOUT_S, gt=0)
    diagnostics_dir: Path = DIAGNOSTICS_DIR
    capture_dir: Path = CAPTURE_DIR
    user_agent: str = USER_AGENT

    @property
    def search_url(self) -> str:
        return self.base_url.rstrip("/") + self.search_path


# env var -> settings field
ENV_FIELDS = {
    "COURT_AUCTION_BASE_URL": "base_url",
    "COURT_AUCTION_SEARCH_PATH": "search_path",
    "HEADLESS": "headless",
    "NAVIGATION_TIMEOUT_MS": "navigation_timeout_ms",
    "READY_TIMEOUT_MS": "ready_timeout_ms",
    "RESULTS_TIMEOUT_MS": "results_timeout_ms",
    "ACTION_TIMEOUT_MS": "action_timeout_ms",
    "MAX_PAGES": "max_pages",
    "NAV_RETRY_BACKOFF_S": "nav_retry_backoff_s",
    "BLOCK_RESOURCES": "block_resources",
    "CAPTURE_NETWORK": "capture_network",
    "NETWORK_MAX_ENTRIES": "network_max_entries",
    "NETWORK_BODY_LIMIT": "network_body_limit",
    "NETWORK_DRAIN_TIMEOUT_S": "network_drain_timeout_s",
    "DIAGNOSTICS_DIR": "diagnostics_dir",
    "CAPTURE_DIR": "capture_dir",
    "COURT_AUCTION_USER_AGENT": "user_agent",
}

BOOL_FIELDS = {"headless", "block_resources", "capture_network"}


def _env_true(value: str) -> bool:
    return value.strip().lower() in TRUTHY


def load_settings(env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> ScraperSettings:
    """Build settings from ``env`` (defaults to ``os.environ``).

    Raises ``pydantic.ValidationError`` for out-of-range or unparsable values.
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    overrides = {}
    for env_name, field_name in ENV_FIELDS.items():
        raw = env.get(env_name)
        if raw is None or raw.strip() == "":
            continue
        overrides[field_name] = _env_true(raw) if field_name in BOOL_FIELDS else raw.strip()
    return ScraperSettings(**overrides)
