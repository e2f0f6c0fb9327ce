from __future__ import annotations

from typing import Any

from openpyxl.worksheet.worksheet import Worksheet

from roster_sync.config import DEFAULT_CONFIG, ReconcileConfig
from roster_sync.engine.models import Found, Lookup, NotFound, TopicKind
from roster_sync.engine.normalize import is_date_like, normalize_name

NUMBER_MARKER = "stt"
MIDTERM_MARKERS = ("m", "mieng")


def cell_value(sheet: Worksheet, row: int, col: int) -> Any:
    return sheet.cell(row=row, column=col).value


def row_values(sheet: Worksheet, row: int) -> list[Any]:
    return [cell_value(sheet, row, col) for col in range(1, sheet.max_column + 1)]


def scan_limit(sheet: Worksheet, config: ReconcileConfig) -> int:
    return min(config.header_scan_rows, sheet.max_row)


def count_date_cells(values: list[Any]) -> int:
    return sum(1 for value in values if value is not None and is_date_like(value))


def is_grade_header(values: list[Any]) -> bool:
    labels = [normalize_name(value) for value in values if value is not None]
    has_number = any(label == NUMBER_MARKER for label in labels)
    has_name = any("ho" in label and "ten" in label for label in labels)
    has_midterm = any(label in MIDTERM_MARKERS for label in labels)
    return has_number and has_name and has_midterm


def find_attendance_header_row(sheet: Worksheet, config: ReconcileConfig = DEFAULT_CONFIG) -> Lookup:
    """First row holding at least `min_date_cells` day/month labels; the type row sits below it."""
    for row in range(1, scan_limit(sheet, config) + 1):
        if count_date_cells(row_values(sheet, row)) >= config.min_date_cells:
            return Found(row)
    return NotFound(f"no date header row in the first {config.header_scan_rows} rows of '{sheet.title}'")


def find_grade_header_row(sheet: Worksheet, config: ReconcileConfig = DEFAULT_CONFIG) -> Lookup:
    for row in range(1, scan_limit(sheet, config) + 1):
        if is_grade_header(row_values(sheet, row)):
            return Found(row)
    return NotFound(f"no STT / Ho ten / M header row in the first {config.header_scan_rows} rows of '{sheet.title}'")


def find_header_row(sheet: Worksheet, kind: TopicKind, config: ReconcileConfig = DEFAULT_CONFIG) -> Lookup:
    if kind is TopicKind.ATTENDANCE:
        return find_attendance_header_row(sheet, config)
    return find_grade_header_row(sheet, config)


def type_row_for(header_row: int) -> int:
    return header_row + 1
