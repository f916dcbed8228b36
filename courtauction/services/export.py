"""
File exports for a finished run.

JSON carries the whole run (criteria, records, parse failures); CSV carries one
row per record for spreadsheets.
"""

import csv
import json
from pathlib import Path
from typing import Iterable, List

from loguru import logger

from courtauction.models import PropertyRecord, RunResult

CSV_FIELDS = [
    "court",
    "case_number",
    "item_number",
    "address",
    "property_type",
    "appraisal_value",
    "minimum_sale_price",
    "auction_date",
    "auction_time",
    "failure_count",
    "status",
    "building_name",
    "building_area",
    "land_area",
    "tenant_status",
    "special_notes",
    "source_url",
]


class RecordExporter:
    def to_dict(self, result: RunResult) -> dict:
        criteria = result.criteria
        return {
            "run_id": result.run_id,
            "court": criteria.court,
            "date_from": criteria.date_from.isoformat(),
            "date_to": criteria.date_to.isoformat(),
            "outcome": result.outcome.value,
            "total_count": len(result.records),
            "records": [record.model_dump(mode="json") for record in result.records],
            "parse_failures": [failure.model_dump(mode="json") for failure in result.parse_failures],
        }

    def to_json(self, result: RunResult, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(result), f, ensure_ascii=False, indent=2, default=str)
        logger.info(f"Saved {len(result.records)} records to {path}")
        return path

    def to_csv(self, records: Iterable[PropertyRecord], path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        rows: List[dict] = [self._csv_row(record) for record in records]
        # utf-8-sig so Excel detects the Korean text
        with open(path, "w", newline="", encoding="utf-8-sig") as output_file:
            writer = csv.DictWriter(output_file, fieldnames=CSV_FIELDS)
            writer.writeheader()
            writer.writerows(rows)
        logger.info(f"Saved {len(rows)} records to {path}")
        return path

    @staticmethod
    def _csv_row(record: PropertyRecord) -> dict:
        data = record.model_dump(mode="json")
        return {name: "" if data.get(name) is None else data[name] for name in CSV_FIELDS}
