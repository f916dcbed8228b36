from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from courtauction.utils.time import now_utc


class PropertyStatus(str, Enum):
    SCHEDULED = "scheduled"  # 신건: first auction not yet held
    ACTIVE = "active"        # 진행: bidding in progress
    SOLD = "sold"            # 매각 / 낙찰
    FAILED = "failed"        # 유찰: no bidder, rescheduled at a lower price
    WITHDRAWN = "withdrawn"  # 취하 / 취소 / 기각 / 정지


class FailureTag(str, Enum):
    CURRENCY = "currency"
    DATE = "date"
    COUNT = "count"
    STATUS = "status"
    TEXT = "text"
    INVARIANT = "invariant"
    AREA = "area"


class RunState(str, Enum):
    IDLE = "idle"
    SESSION_OPEN = "session_open"
    SEARCHING = "searching"
    RESULTS_READY = "results_ready"
    EMPTY_RESULT = "empty_result"
    SEARCH_FAILED = "search_failed"
    PAGINATING = "paginating"
    NORMALIZING = "normalizing"
    DIAGNOSTIC_CAPTURE = "diagnostic_capture"
    DONE = "done"
    FAILED = "failed"


class RunOutcome(str, Enum):
    DONE = "done"                   # at least one record
    EMPTY = "empty"                 # search ran, nothing listed
    SEARCH_FAILED = "search_failed" # structural problem, degraded to empty
    CANCELLED = "cancelled"         # stopped between pages
    FAILED = "failed"               # fatal error, exception re-raised


class SearchCriteria(BaseModel):
    """Immutable search input for one run."""

    model_config = ConfigDict(frozen=True)

    court: str
    date_from: date
    date_to: date
    page_cap: Optional[int] = None

    @field_validator("court")
    @classmethod
    def _court_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("court name must not be blank")
        return value

    @field_validator("page_cap")
    @classmethod
    def _page_cap_positive(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError("page_cap must be >= 1")
        return value

    @model_validator(mode="after")
    def _range_ordered(self) -> "SearchCriteria":
        if self.date_from > self.date_to:
            raise ValueError(f"date_from {self.date_from} is after date_to {self.date_to}")
        return self

    def describe(self) -> str:
        return f"{self.court} {self.date_from.isoformat()}~{self.date_to.isoformat()}"


class PropertyRecord(BaseModel):
    """One auction item (사건번호 + 물건번호) harvested from the results table."""

    case_number: str
    item_number: str = "1"
    address: Optional[str] = None
    property_type: Optional[str] = None
    appraisal_value: Optional[int] = None
    minimum_sale_price: Optional[int] = None
    auction_date: Optional[date] = None
    auction_time: Optional[time] = None
    failure_count: int = Field(default=0, ge=0)
    status: PropertyStatus = PropertyStatus.ACTIVE
    court: Optional[str] = None
    building_name: Optional[str] = None
    building_area: Optional[float] = None  # ㎡
    land_area: Optional[float] = None      # ㎡
    tenant_status: Optional[str] = None
    special_notes: Optional[str] = None
    source_url: Optional[str] = None

    @model_validator(mode="after")
    def _minimum_not_above_appraisal(self) -> "PropertyRecord":
        if (
            self.appraisal_value is not None
            and self.minimum_sale_price is not None
            and self.minimum_sale_price > self.appraisal_value
        ):
            raise ValueError("minimum_sale_price must not exceed appraisal_value")
        return self

    @property
    def key(self) -> Tuple[str, str]:
        return (self.case_number, self.item_number)


class ParseFailure(BaseModel):
    """A field-level normalization problem; the row itself is kept."""

    field: str
    tag: FailureTag
    reason: str
    raw: Dict[str, Optional[str]] = Field(default_factory=dict)
    case_number: Optional[str] = None
    item_number: Optional[str] = None
    page: Optional[int] = None


class CapturedRequest(BaseModel):
    url: str
    method: str
    pattern: str
    status: Optional[int] = None
    resource_type: Optional[str] = None
    content_type: Optional[str] = None
    request_body: Optional[str] = None
    response_body: Optional[str] = None
    failure: Optional[str] = None
    timestamp: datetime = Field(default_factory=now_utc)


class DiagnosticReport(BaseModel):
    run_id: str
    reason: str
    directory: str
    screenshot_path: Optional[str] = None
    network_log_path: Optional[str] = None
    page_html_path: Optional[str] = None
    reason_path: Optional[str] = None
    captured_at: datetime = Field(default_factory=now_utc)


@dataclass(slots=True, frozen=True)
class RawRow:
    """Cleaned cell text keyed by column-map name; ``None`` where the row had no cell."""

    cells: Dict[str, Optional[str]]
    page: int = 1
    index: int = 0

    def get(self, column: str) -> Optional[str]:
        return self.cells.get(column)


@dataclass(slots=True)
class NormalizedRow:
    record: PropertyRecord
    failures: List[ParseFailure] = field(default_factory=list)


class RunResult(BaseModel):
    run_id: str
    criteria: SearchCriteria
    outcome: RunOutcome
    state: RunState
    records: List[PropertyRecord] = Field(default_factory=list)
    parse_failures: List[ParseFailure] = Field(default_factory=list)
    pages_visited: int = 0
    duplicates_dropped: int = 0
    diagnostics: Optional[DiagnosticReport] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)
