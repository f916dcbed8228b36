from __future__ import annotations

from datetime import date, time

import pytest

from courtauction.models import FailureTag, PropertyStatus, RawRow
from courtauction.scrapers.layout import DEFAULT_COLUMN_MAP, ColumnMap
from courtauction.scrapers.normalizer import (
    FieldNormalizer,
    format_currency,
    parse_count_suffix,
    render_raw_row,
)
from tests.fakes import listing_cells


def _raw(**overrides: str | None) -> RawRow:
    cells = DEFAULT_COLUMN_MAP.extract(listing_cells(1))
    cells.update(overrides)
    return RawRow(cells=cells, page=3, index=0)


@pytest.mark.parametrize("text", ["123,456,789원", "123,456,789 원", "123456789", " 123,456,789원 "])
def test_currency_text_becomes_integer(text: str) -> None:
    result = FieldNormalizer().normalize(_raw(appraisal_value=text, minimum_sale_price="100,000,000원"))

    assert result.record.appraisal_value == 123456789
    assert result.failures == []


def test_well_formed_row_maps_every_field() -> None:
    result = FieldNormalizer(court="부산지방법원", source_url="https://example/search").normalize(_raw())
    record = result.record

    assert result.failures == []
    assert record.case_number == "2024타경1001"
    assert record.item_number == "1"
    assert record.address == "부산광역시 해운대구 우동 1번지"
    assert record.property_type == "아파트"
    assert record.appraisal_value == 300_000_000
    assert record.minimum_sale_price == 210_000_000
    assert record.auction_date == date(2025, 1, 15)
    assert record.auction_time == time(10, 0)
    assert record.status is PropertyStatus.FAILED
    assert record.failure_count == 1
    assert record.court == "부산지방법원"
    assert record.source_url == "https://example/search"
    assert record.building_area is None
    assert record.special_notes is None


def test_missing_date_cell_yields_null_and_date_failure() -> None:
    result = FieldNormalizer().normalize(_raw(auction_date=None))

    assert result.record.auction_date is None
    assert [f.tag for f in result.failures] == [FailureTag.DATE]
    failure = result.failures[0]
    assert failure.field == "auction_date"
    assert failure.case_number == "2024타경1001"
    assert failure.item_number == "1"
    assert failure.page == 3


def test_unparsable_date_is_a_date_failure() -> None:
    result = FieldNormalizer().normalize(_raw(auction_date="2025.13.45"))

    assert result.record.auction_date is None
    assert result.failures[0].tag is FailureTag.DATE


def test_bad_currency_keeps_row_with_failure() -> None:
    result = FieldNormalizer().normalize(_raw(minimum_sale_price="일억원"))

    assert result.record.minimum_sale_price is None
    assert result.record.appraisal_value == 300_000_000
    assert [(f.field, f.tag) for f in result.failures] == [("minimum_sale_price", FailureTag.CURRENCY)]


@pytest.mark.parametrize("text", ["", "-"])
def test_blank_currency_is_null_without_failure(text: str) -> None:
    result = FieldNormalizer().normalize(_raw(minimum_sale_price=text))

    assert result.record.minimum_sale_price is None
    assert result.failures == []


def test_missing_currency_cell_is_a_failure() -> None:
    result = FieldNormalizer().normalize(_raw(appraisal_value=None))

    assert result.record.appraisal_value is None
    assert result.failures[0].tag is FailureTag.CURRENCY
    assert result.failures[0].reason == "missing cell"


def test_minimum_above_appraisal_is_dropped_with_invariant_failure() -> None:
    result = FieldNormalizer().normalize(
        _raw(appraisal_value="100,000,000원", minimum_sale_price="120,000,000원")
    )

    assert result.record.appraisal_value == 100_000_000
    assert result.record.minimum_sale_price is None
    assert result.failures[0].tag is FailureTag.INVARIANT


@pytest.mark.parametrize(
    ("text", "status", "count"),
    [
        ("신건", PropertyStatus.SCHEDULED, 0),
        ("유찰 2회", PropertyStatus.FAILED, 2),
        ("유찰(3회)", PropertyStatus.FAILED, 3),
        ("진행", PropertyStatus.ACTIVE, 0),
        ("매각", PropertyStatus.SOLD, 0),
        ("낙찰", PropertyStatus.SOLD, 0),
        ("취하", PropertyStatus.WITHDRAWN, 0),
        ("기각", PropertyStatus.WITHDRAWN, 0),
        ("", PropertyStatus.ACTIVE, 0),
    ],
)
def test_status_keywords(text: str, status: PropertyStatus, count: int) -> None:
    result = FieldNormalizer().normalize(_raw(status=text))

    assert result.record.status is status
    assert result.record.failure_count == count
    assert result.failures == []


def test_unknown_status_defaults_to_active_with_failure() -> None:
    result = FieldNormalizer().normalize(_raw(status="미상"))

    assert result.record.status is PropertyStatus.ACTIVE
    assert result.failures[0].tag is FailureTag.STATUS


def test_text_fields_are_cleaned() -> None:
    result = FieldNormalizer().normalize(
        _raw(case_number=" 2024 타경\n 1234 ", item_number="물건 2", property_type="아파트 (32평)")
    )

    assert result.record.case_number == "2024타경1234"
    assert result.record.item_number == "2"
    assert result.record.property_type == "아파트"


def test_missing_case_number_is_a_text_failure() -> None:
    result = FieldNormalizer().normalize(_raw(case_number=""))

    assert result.record.case_number == ""
    assert result.failures[0].tag is FailureTag.TEXT
    assert result.failures[0].case_number is None


def test_separate_failure_count_column() -> None:
    column_map = ColumnMap(failure_count=8)
    normalizer = FieldNormalizer(column_map)

    ok = normalizer.normalize(RawRow(cells=column_map.extract(listing_cells(1, status="유찰") + ["3회"])))
    bad = normalizer.normalize(RawRow(cells=column_map.extract(listing_cells(1, status="유찰") + ["많음"])))

    assert ok.record.failure_count == 3
    assert ok.failures == []
    assert bad.record.failure_count == 0
    assert bad.failures[0].tag is FailureTag.COUNT


@pytest.mark.parametrize("column_map", [DEFAULT_COLUMN_MAP, ColumnMap(failure_count=8)])
def test_rendering_a_normalized_record_round_trips(column_map: ColumnMap) -> None:
    normalizer = FieldNormalizer(column_map, court="부산지방법원", source_url="https://example/search")
    cells = listing_cells(7, status="유찰 2회", minimum_sale_price="-")
    if column_map.failure_count is not None:
        cells = listing_cells(7, status="유찰", minimum_sale_price="-") + ["2회"]
    first = normalizer.normalize(RawRow(cells=column_map.extract(cells))).record

    second = normalizer.normalize(render_raw_row(first, column_map))

    assert second.failures == []
    assert second.record == first


DETAIL_COLUMN_MAP = ColumnMap(
    auction_time=8,
    building_name=9,
    building_area=10,
    land_area=11,
    tenant_status=12,
    special_notes=13,
)


def _detail_row(*detail: str, **overrides: str) -> RawRow:
    cells = listing_cells(1, auction_date="2025.01.15", **overrides) + list(detail)
    return RawRow(cells=DETAIL_COLUMN_MAP.extract(cells), page=1)


def test_superscript_digits_in_currency_are_a_failure() -> None:
    result = FieldNormalizer().normalize(_raw(appraisal_value="100,000,000²"))

    assert result.record.appraisal_value is None
    assert result.record.minimum_sale_price == 210_000_000
    assert [(f.field, f.tag) for f in result.failures] == [("appraisal_value", FailureTag.CURRENCY)]


def test_circled_digit_in_failure_count_column_is_a_failure() -> None:
    column_map = ColumnMap(failure_count=8)
    cells = listing_cells(1, status="유찰") + ["②"]

    result = FieldNormalizer(column_map).normalize(RawRow(cells=column_map.extract(cells)))

    assert result.record.failure_count == 0
    assert [(f.field, f.tag) for f in result.failures] == [("failure_count", FailureTag.COUNT)]


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2025.01.15 14:30", time(14, 30)),
        ("2025.01.15(수) 9:00", time(9, 0)),
        ("2025.01.15", None),
    ],
)
def test_auction_time_is_read_from_date_cell(text: str, expected: time | None) -> None:
    result = FieldNormalizer().normalize(_raw(auction_date=text))

    assert result.record.auction_date == date(2025, 1, 15)
    assert result.record.auction_time == expected
    assert result.failures == []


def test_out_of_range_time_is_a_date_failure() -> None:
    result = FieldNormalizer().normalize(_raw(auction_date="2025.01.15 25:00"))

    assert result.record.auction_date == date(2025, 1, 15)
    assert result.record.auction_time is None
    assert [(f.field, f.tag) for f in result.failures] == [("auction_time", FailureTag.DATE)]


def test_detail_columns_are_parsed() -> None:
    result = FieldNormalizer(DETAIL_COLUMN_MAP).normalize(
        _detail_row("14:00", " 해운대 아이파크 ", "84.97㎡", "1,234.5 m²", "임차인 없음", "유치권 신고")
    )
    record = result.record

    assert result.failures == []
    assert record.auction_time == time(14, 0)
    assert record.building_name == "해운대 아이파크"
    assert record.building_area == 84.97
    assert record.land_area == 1234.5
    assert record.tenant_status == "임차인 없음"
    assert record.special_notes == "유치권 신고"


def test_shared_area_cell_is_split_by_prefix() -> None:
    column_map = ColumnMap(building_area=8, land_area=8)
    normalizer = FieldNormalizer(column_map)

    both = normalizer.normalize(RawRow(cells=column_map.extract(listing_cells(1) + ["건물 84.97㎡ 토지 30.1㎡"])))
    land_only = normalizer.normalize(RawRow(cells=column_map.extract(listing_cells(1) + ["토지면적: 30.1㎡"])))

    assert (both.record.building_area, both.record.land_area) == (84.97, 30.1)
    assert (land_only.record.building_area, land_only.record.land_area) == (None, 30.1)
    assert both.failures == [] and land_only.failures == []


@pytest.mark.parametrize(("text", "expected"), [("84.97", 84.97), ("-", None), ("", None)])
def test_bare_or_blank_area(text: str, expected: float | None) -> None:
    result = FieldNormalizer(DETAIL_COLUMN_MAP).normalize(_detail_row("", "", text))

    assert result.record.building_area == expected
    assert result.record.building_name is None
    assert result.failures == []


def test_unparsable_area_is_an_area_failure() -> None:
    result = FieldNormalizer(DETAIL_COLUMN_MAP).normalize(_detail_row("", "", "넓음", "30㎡"))

    assert result.record.building_area is None
    assert result.record.land_area == 30.0
    assert [(f.field, f.tag) for f in result.failures] == [("building_area", FailureTag.AREA)]


def test_detail_record_round_trips() -> None:
    normalizer = FieldNormalizer(DETAIL_COLUMN_MAP)
    first = normalizer.normalize(
        _detail_row("14:00", "아이파크", "84.97㎡", "1,234.5㎡", "임차인 없음", "유치권 신고")
    ).record

    second = normalizer.normalize(render_raw_row(first, DETAIL_COLUMN_MAP))

    assert second.failures == []
    assert second.record == first


def test_helpers() -> None:
    assert parse_count_suffix("유찰 1회 / 재매각 2회") == 2
    assert parse_count_suffix(None) == 0
    assert format_currency(1234567) == "1,234,567원"
    assert format_currency(None) == ""
