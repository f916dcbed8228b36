from __future__ import annotations

import csv
import json
from datetime import date
from pathlib import Path

from courtauction.models import (
    FailureTag,
    ParseFailure,
    PropertyRecord,
    PropertyStatus,
    RunOutcome,
    RunResult,
    RunState,
)
from courtauction.services.export import CSV_FIELDS, RecordExporter


def _result(busan_criteria) -> RunResult:
    records = [
        PropertyRecord(
            case_number="2024타경1001",
            address="부산광역시 해운대구 우동 1번지",
            property_type="아파트",
            appraisal_value=300_000_000,
            minimum_sale_price=210_000_000,
            auction_date=date(2025, 1, 15),
            failure_count=1,
            status=PropertyStatus.FAILED,
            court="부산지방법원",
        ),
        PropertyRecord(case_number="2024타경1002", item_number="2"),
    ]
    failures = [ParseFailure(field="auction_date", tag=FailureTag.DATE, reason="missing date", case_number="2024타경1002")]
    return RunResult(
        run_id="run-1",
        criteria=busan_criteria,
        outcome=RunOutcome.DONE,
        state=RunState.DONE,
        records=records,
        parse_failures=failures,
    )


def test_to_json_writes_run_summary(tmp_path: Path, busan_criteria) -> None:
    path = RecordExporter().to_json(_result(busan_criteria), tmp_path / "out" / "busan.json")

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["run_id"] == "run-1"
    assert payload["court"] == "부산지방법원"
    assert (payload["date_from"], payload["date_to"]) == ("2025-01-01", "2025-01-31")
    assert payload["total_count"] == 2
    assert payload["records"][0]["auction_date"] == "2025-01-15"
    assert payload["records"][0]["status"] == "failed"
    assert payload["parse_failures"][0]["tag"] == "date"


def test_to_csv_writes_fixed_header(tmp_path: Path, busan_criteria) -> None:
    path = RecordExporter().to_csv(_result(busan_criteria).records, tmp_path / "busan.csv")

    with open(path, newline="", encoding="utf-8-sig") as handle:
        rows = list(csv.DictReader(handle))
    with open(path, newline="", encoding="utf-8-sig") as handle:
        header = next(csv.reader(handle))

    assert header == CSV_FIELDS
    assert rows[0]["appraisal_value"] == "300000000"
    assert rows[0]["address"] == "부산광역시 해운대구 우동 1번지"
    assert rows[1]["auction_date"] == ""
    assert rows[1]["item_number"] == "2"
