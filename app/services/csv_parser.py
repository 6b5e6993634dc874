"""
CSV parsing for metadata enrichment.

Quote-aware parsing via the stdlib csv module, plus the mapping from
source-system column headers to archive fields.
"""

import csv
import io
from typing import Dict, List, Tuple

from app.core.config import settings
from app.core.exceptions import ValidationError

# Header -> archive field. When two headers map to the same field, the
# header listed first wins.
CSV_COLUMN_MAP: Dict[str, str] = {
    "全宗号": "fonds_no",
    "fonds_no": "fonds_no",
    "保管期限": "retention_period",
    "retention_period": "retention_period",
    "保管期限代码": "retention_code",
    "retention_code": "retention_code",
    "年度": "year",
    "year": "year",
    "部门代码": "dept_code",
    "机构问题代码": "dept_code",
    "dept_code": "dept_code",
    "盒号": "box_no",
    "box_no": "box_no",
    "件号": "piece_no",
    "piece_no": "piece_no",
    "题名": "title",
    "title": "title",
    "机构问题": "dept_issue",
    "dept_issue": "dept_issue",
    "责任者": "responsible",
    "responsible": "responsible",
    "文号": "doc_no",
    "doc_no": "doc_no",
    "日期": "date",
    "date": "date",
    "页数": "page_no",
    "页号": "page_no",
    "page_no": "page_no",
    "备注": "remark",
    "remark": "remark",
}

KEY_COLUMN_ALIAS = "archive_no"

_HEADER_PRIORITY = {header: position for position, header in enumerate(CSV_COLUMN_MAP)}


def parse_csv(text: str) -> Tuple[List[str], List[List[str]]]:
    """
    Parse CSV text into (headers, rows).

    Raises:
        ValidationError: if there is no header plus at least one data row
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    records = []
    for record in csv.reader(io.StringIO(text)):
        cells = [cell.strip() for cell in record]
        if not any(cells):
            continue
        records.append(cells)

    if len(records) < 2:
        raise ValidationError("CSV file is empty or malformed")

    return records[0], records[1:]


def find_key_column(headers: List[str]) -> int:
    """Index of the archive number column."""
    for candidate in (settings.csv_key_column, KEY_COLUMN_ALIAS):
        if candidate in headers:
            return headers.index(candidate)
    raise ValidationError(
        f"CSV is missing the key column '{settings.csv_key_column}'",
        details={"headers": headers},
    )


def build_field_columns(headers: List[str]) -> Dict[str, int]:
    """Archive field -> column index, resolving header conflicts by priority."""
    chosen: Dict[str, Tuple[int, int]] = {}
    for column, header in enumerate(headers):
        field = CSV_COLUMN_MAP.get(header)
        if field is None:
            continue
        priority = _HEADER_PRIORITY[header]
        if field not in chosen or priority < chosen[field][0]:
            chosen[field] = (priority, column)
    return {field: column for field, (_, column) in chosen.items()}


def row_to_fields(row: List[str], field_columns: Dict[str, int]) -> Dict[str, str]:
    """
    Sparse field mapping for one row.

    Only columns the row actually has are included; a short row leaves
    the remaining fields untouched.
    """
    return {field: row[column] for field, column in field_columns.items() if column < len(row)}
