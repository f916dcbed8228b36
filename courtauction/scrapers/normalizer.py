"""
Raw results-table cells -> typed ``PropertyRecord``.

Court listing text varies by item type (missing prices, notes in the status
cell, dates followed by times), so every field is parsed on its own. A bad
field becomes ``None`` plus a ``ParseFailure``; the row is always kept.
"""

import re
from datetime import date, datetime, time
from typing import List, Optional, Tuple

from courtauction.models import (
    FailureTag,
    NormalizedRow,
    ParseFailure,
    PropertyRecord,
    PropertyStatus,
    RawRow,
)
from courtauction.scrapers.layout import DEFAULT_COLUMN_MAP, ColumnMap
from courtauction.utils.time import SITE_DATE_FORMAT, format_site_date

CURRENCY_SUFFIX = "원"
BLANK_MARKERS = {"", "-"}
DEFAULT_ITEM_NUMBER = "1"
DEFAULT_PROPERTY_TYPE = "기타"
PROPERTY_TYPES = (
    "아파트", "오피스텔", "단독주택", "다세대", "빌라", "연립",
    "상가", "사무실", "토지", "공장", "창고",
)

# Checked in order; first keyword found in the status cell wins.
STATUS_KEYWORDS: Tuple[Tuple[str, PropertyStatus], ...] = (
    ("유찰", PropertyStatus.FAILED),
    ("신건", PropertyStatus.SCHEDULED),
    ("취하", PropertyStatus.WITHDRAWN),
    ("취소", PropertyStatus.WITHDRAWN),
    ("기각", PropertyStatus.WITHDRAWN),
    ("정지", PropertyStatus.WITHDRAWN),
    ("낙찰", PropertyStatus.SOLD),
    ("매각", PropertyStatus.SOLD),
    ("진행", PropertyStatus.ACTIVE),
)
STATUS_LABELS = {
    PropertyStatus.SCHEDULED: "신건",
    PropertyStatus.ACTIVE: "진행",
    PropertyStatus.FAILED: "유찰",
    PropertyStatus.SOLD: "매각",
    PropertyStatus.WITHDRAWN: "취하",
}

AREA_UNIT = "㎡"
AREA_PREFIXES = {"building_area": "건물", "land_area": "토지"}
DETAIL_TEXT_FIELDS = ("building_name", "tenant_status", "special_notes")

# ASCII digits only; \d also matches "²" and "②", which int() rejects.
_CASE_NUMBER = re.compile(r"[0-9]{4}\s*타경\s*[0-9]+")
_DIGITS = re.compile(r"[0-9]+")
_DATE_TOKEN = re.compile(r"[0-9]{4}\.[0-9]{2}\.[0-9]{2}")
_TIME_TOKEN = re.compile(r"\b([0-9]{1,2}):([0-9]{2})\b")
_COUNT_SUFFIX = re.compile(r"([0-9]+)\s*회")
_CURRENCY_NOISE = re.compile(r"[,\s]")
_AREA_NUMBER = r"([0-9][0-9,]*(?:\.[0-9]+)?)"
_AREA_UNITS = r"\s*(?:㎡|m²|m2)"
_AREA_VALUE = re.compile(_AREA_NUMBER + _AREA_UNITS)
_AREA_BARE = re.compile(_AREA_NUMBER)


class FieldNormalizer:
    def __init__(
        self,
        column_map: ColumnMap = DEFAULT_COLUMN_MAP,
        court: Optional[str] = None,
        source_url: Optional[str] = None,
    ):
        self.column_map = column_map
        self.court = court
        self.source_url = source_url

    def normalize(self, raw: RawRow) -> NormalizedRow:
        failures: List[ParseFailure] = []

        def fail(field_name: str, tag: FailureTag, reason: str) -> None:
            failures.append(
                ParseFailure(field=field_name, tag=tag, reason=reason, raw=dict(raw.cells), page=raw.page)
            )

        case_number = self._case_number(raw.get("case_number"))
        if not case_number:
            fail("case_number", FailureTag.TEXT, "missing case number")
        item_number = self._item_number(raw.get("item_number"))

        appraisal = self._currency(raw, "appraisal_value", fail)
        minimum = self._currency(raw, "minimum_sale_price", fail)
        if appraisal is not None and minimum is not None and minimum > appraisal:
            fail(
                "minimum_sale_price",
                FailureTag.INVARIANT,
                f"minimum sale price {minimum} exceeds appraisal value {appraisal}",
            )
            minimum = None

        auction_date = self._date(raw, "auction_date", fail)
        auction_time = self._time(raw, fail)
        status_text = raw.get("status")
        status = self._status(status_text, fail)
        failure_count = self._failure_count(raw, status_text, fail)

        record = PropertyRecord(
            case_number=case_number,
            item_number=item_number,
            address=clean(raw.get("address")) or None,
            property_type=self._property_type(raw.get("property_type")),
            appraisal_value=appraisal,
            minimum_sale_price=minimum,
            auction_date=auction_date,
            auction_time=auction_time,
            failure_count=failure_count,
            status=status,
            court=self.court,
            building_area=self._area(raw, "building_area", fail),
            land_area=self._area(raw, "land_area", fail),
            source_url=self.source_url,
            **{name: clean(raw.get(name)) or None for name in DETAIL_TEXT_FIELDS},
        )
        for failure in failures:
            failure.case_number = record.case_number or None
            failure.item_number = record.item_number
        return NormalizedRow(record=record, failures=failures)

    @staticmethod
    def _case_number(text: Optional[str]) -> str:
        text = clean(text)
        match = _CASE_NUMBER.search(text)
        if match:
            return re.sub(r"\s+", "", match.group(0))
        return text

    @staticmethod
    def _item_number(text: Optional[str]) -> str:
        match = _DIGITS.search(clean(text))
        return match.group(0) if match else DEFAULT_ITEM_NUMBER

    @staticmethod
    def _property_type(text: Optional[str]) -> str:
        text = clean(text)
        for keyword in PROPERTY_TYPES:
            if keyword in text:
                return keyword
        return text or DEFAULT_PROPERTY_TYPE

    @staticmethod
    def _currency(raw: RawRow, column: str, fail) -> Optional[int]:
        text = raw.get(column)
        if text is None:
            fail(column, FailureTag.CURRENCY, "missing cell")
            return None
        text = clean(text)
        if text in BLANK_MARKERS:
            return None
        digits = _CURRENCY_NOISE.sub("", text).removesuffix(CURRENCY_SUFFIX)
        if not _DIGITS.fullmatch(digits):
            fail(column, FailureTag.CURRENCY, f"not a currency amount: {text!r}")
            return None
        return int(digits)

    @staticmethod
    def _date(raw: RawRow, column: str, fail) -> Optional[date]:
        text = clean(raw.get(column))
        if not text:
            fail(column, FailureTag.DATE, "missing date")
            return None
        match = _DATE_TOKEN.search(text)
        if not match:
            fail(column, FailureTag.DATE, f"no {SITE_DATE_FORMAT} date in {text!r}")
            return None
        try:
            return datetime.strptime(match.group(0), SITE_DATE_FORMAT).date()
        except ValueError:
            fail(column, FailureTag.DATE, f"invalid date {match.group(0)!r}")
            return None

    def _time(self, raw: RawRow, fail) -> Optional[time]:
        column = "auction_time" if self.column_map.auction_time is not None else "auction_date"
        match = _TIME_TOKEN.search(clean(raw.get(column)))
        if not match:
            return None
        try:
            return time(int(match.group(1)), int(match.group(2)))
        except ValueError:
            fail("auction_time", FailureTag.DATE, f"invalid time {match.group(0)!r}")
            return None

    @staticmethod
    def _area(raw: RawRow, column: str, fail) -> Optional[float]:
        text = clean(raw.get(column))
        if text in BLANK_MARKERS:
            return None
        # Building and land areas may share one cell ("건물 84.97㎡ 토지 30.1㎡").
        prefix = AREA_PREFIXES[column]
        others = [p for name, p in AREA_PREFIXES.items() if name != column]
        if prefix not in text and any(p in text for p in others):
            return None
        match = (
            re.search(prefix + r"[^0-9]*?" + _AREA_NUMBER + _AREA_UNITS, text)
            or _AREA_VALUE.search(text)
            or _AREA_BARE.fullmatch(text)
        )
        if not match:
            fail(column, FailureTag.AREA, f"not an area: {text!r}")
            return None
        return float(match.group(1).replace(",", ""))

    @staticmethod
    def _status(text: Optional[str], fail) -> PropertyStatus:
        text = clean(text)
        if not text:
            return PropertyStatus.ACTIVE
        for keyword, status in STATUS_KEYWORDS:
            if keyword in text:
                return status
        fail("status", FailureTag.STATUS, f"unrecognised status {text!r}")
        return PropertyStatus.ACTIVE

    def _failure_count(self, raw: RawRow, status_text: Optional[str], fail) -> int:
        if self.column_map.failure_count is None:
            return parse_count_suffix(status_text)
        text = clean(raw.get("failure_count"))
        if _DIGITS.fullmatch(text):
            return int(text)
        count = parse_count_suffix(text)
        if text and not _COUNT_SUFFIX.search(text):
            fail("failure_count", FailureTag.COUNT, f"no count in {text!r}")
        return count


def clean(text: Optional[str]) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def parse_count_suffix(text: Optional[str]) -> int:
    """Trailing ``N회`` count (``유찰 2회`` -> 2); 0 when absent."""
    matches = _COUNT_SUFFIX.findall(clean(text))
    return int(matches[-1]) if matches else 0


def format_currency(value: Optional[int]) -> str:
    return f"{value:,}{CURRENCY_SUFFIX}" if value is not None else ""


def format_area(column: str, value: Optional[float]) -> str:
    return f"{AREA_PREFIXES[column]} {value:,}{AREA_UNIT}" if value is not None else ""


def render_raw_row(record: PropertyRecord, column_map: ColumnMap = DEFAULT_COLUMN_MAP) -> RawRow:
    """Render a record back into the site's cell text."""
    status_text = STATUS_LABELS[record.status]
    date_text = format_site_date(record.auction_date) if record.auction_date else ""
    time_text = record.auction_time.strftime("%H:%M") if record.auction_time else ""
    cells = {
        "case_number": record.case_number,
        "item_number": record.item_number,
        "address": record.address or "",
        "property_type": record.property_type or "",
        "appraisal_value": format_currency(record.appraisal_value),
        "minimum_sale_price": format_currency(record.minimum_sale_price),
        "building_area": format_area("building_area", record.building_area),
        "land_area": format_area("land_area", record.land_area),
    }
    for name in DETAIL_TEXT_FIELDS:
        cells[name] = getattr(record, name) or ""
    if column_map.auction_time is None:
        cells["auction_date"] = f"{date_text} {time_text}".strip()
    else:
        cells["auction_date"] = date_text
        cells["auction_time"] = time_text
    if column_map.failure_count is None:
        if record.failure_count:
            status_text = f"{status_text} {record.failure_count}회"
    else:
        cells["failure_count"] = f"{record.failure_count}회"
    cells["status"] = status_text
    return RawRow(cells={name: cells.get(name, "") for name in column_map.columns()})
