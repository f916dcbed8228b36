"""
Site structure declaration for the court auction search and results pages.

Everything that couples the scraper to the site's markup lives here: the CSS
selectors used by the search form navigator and the pager, and the column map
used by the results parser. A site redesign should only require editing this
module (or passing a different ``SiteLayout`` / ``ColumnMap`` instance).
"""

from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ColumnMap:
    """Zero-based ``td`` positions of each field in a results row."""

    case_number: int = 0
    item_number: int = 1
    address: int = 2
    property_type: int = 3
    appraisal_value: int = 4
    minimum_sale_price: int = 5
    auction_date: int = 6
    status: int = 7
    # Some layouts show 유찰 count in its own column; otherwise it is read from the status cell.
    failure_count: Optional[int] = None
    # Detail columns; unmapped in the list view. The time is otherwise read from the date cell.
    auction_time: Optional[int] = None
    building_name: Optional[int] = None
    building_area: Optional[int] = None
    land_area: Optional[int] = None
    tenant_status: Optional[int] = None
    special_notes: Optional[int] = None
    # Expected header text per column, checked when the table has a header row.
    header_labels: Dict[str, str] = field(default_factory=lambda: {
        "case_number": "사건번호",
        "item_number": "물건번호",
        "address": "소재지",
        "property_type": "용도",
        "appraisal_value": "감정평가액",
        "minimum_sale_price": "최저매각가격",
        "auction_date": "매각기일",
        "status": "진행상태",
    })

    def columns(self) -> Dict[str, int]:
        """Mapped column name -> cell index, in declaration order."""
        mapped = {}
        for f in fields(self):
            if f.name == "header_labels":
                continue
            index = getattr(self, f.name)
            if index is not None:
                mapped[f.name] = index
        return mapped

    def extract(self, cells: List[str]) -> Dict[str, Optional[str]]:
        """Pick mapped cells out of a row; positions past the row's end become ``None``."""
        return {
            name: cells[index] if index < len(cells) else None
            for name, index in self.columns().items()
        }


@dataclass(frozen=True)
class SiteLayout:
    """CSS selectors for the search form and results pages."""

    court_select: str = "select#srnID"
    court_option: str = "option"
    property_type_all: str = 'input[name="rd2"][value=""]'
    date_from_input: str = 'input[name="termStartDt"]'
    date_to_input: str = 'input[name="termEndDt"]'
    submit: str = 'input[alt="검색"], img[alt="검색"], button[type="submit"]'
    results_table: str = "table.Ltbl_list"
    header_row: str = "thead tr"
    body_rows: str = "tr"
    next_page: str = 'a[title="다음페이지"], a.next'
    disabled_class: str = "disabled"
    no_results_text: str = "검색결과가 없습니다"


DEFAULT_COLUMN_MAP = ColumnMap()
DEFAULT_LAYOUT = SiteLayout()
