"""Read-only views of the master workbook: grades, roster and attendance columns."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd
from openpyxl.utils.datetime import from_excel
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from roster_sync.config import DEFAULT_CONFIG, ReconcileConfig
from roster_sync.engine.columns import (
    AttendanceColumn,
    find_attendance_column,
    find_grade_column,
    find_labelled_column,
    list_attendance_columns,
)
from roster_sync.engine.headers import (
    cell_value,
    find_attendance_header_row,
    find_grade_header_row,
    row_values,
)
from roster_sync.engine.models import (
    SEMESTERS,
    AttendanceType,
    GradeComponent,
    StudentGrades,
    grade_in_range,
    parse_semester,
)
from roster_sync.engine.normalize import cell_text, normalize_name, target_date_key
from roster_sync.engine.sheets import find_attendance_sheet, find_grades_sheet
from roster_sync.engine.writer import load_workbook_bytes

Source = Union[bytes, Path]

NAME_HEADER_LABELS = ("ho va ten", "ho ten", "hoten")
ROSTER_HEADER_SCAN_ROWS = 15
ROSTER_SPLIT_NAME_SAMPLES = 5
BAPTISMAL_COLUMN = 3
BIRTH_DATE_COLUMN = 6
EXCEL_SERIAL_RANGE = (40000, 60000)
SLASH_DATE_PREFIX_RE = re.compile(r"^\d{4}/\d{2}/\d{2}")
LEADING_INT_RE = re.compile(r"^\s*(\d+)")


class WorkbookReadError(ValueError):
    pass


def open_workbook(source: Source, config: ReconcileConfig = DEFAULT_CONFIG) -> Workbook:
    """Load cached values (formulas already evaluated by Excel) for reading."""
    raw = source.read_bytes() if isinstance(source, Path) else bytes(source)
    try:
        return load_workbook_bytes(raw, config, data_only=True)
    except Exception as exc:
        raise WorkbookReadError(f"Could not read workbook: {exc}") from exc


# ── Grades ───────────────────────────────────────────────────────────────────


def extract_grade(value: Any, config: ReconcileConfig = DEFAULT_CONFIG) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value).strip().replace(",", ".")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not grade_in_range(number, config.grade_min, config.grade_max):
        return None
    return number


def looks_like_name_part(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    text = value.strip()
    if not text or len(text) >= 20:
        return False
    if "GMT" in text or "-" in text or SLASH_DATE_PREFIX_RE.match(text):
        return False
    return True


def is_header_echo(name: str) -> bool:
    normalized = normalize_name(name)
    return "ho va ten" in normalized or "ho ten" in normalized or normalized == "stt"


def read_grades_from_sheet(sheet: Worksheet, config: ReconcileConfig = DEFAULT_CONFIG) -> list[StudentGrades]:
    header = find_grade_header_row(sheet, config)
    if not header:
        return []
    name_col = find_labelled_column(sheet, header.index, NAME_HEADER_LABELS)
    if not name_col:
        return []
    grade_cols = {
        component: find_grade_column(sheet, header.index, component, config)
        for component in GradeComponent
    }

    rows = []
    for row in range(header.index + 1, sheet.max_row + 1):
        name = cell_text(cell_value(sheet, row, name_col.index))
        if not name:
            continue
        following = cell_value(sheet, row, name_col.index + 1)
        if looks_like_name_part(following):
            name = f"{name} {following.strip()}"
        if len(name) < 2 or is_header_echo(name):
            continue
        values = {
            component: extract_grade(cell_value(sheet, row, found.index), config) if found else None
            for component, found in grade_cols.items()
        }
        if all(value is None for value in values.values()):
            continue
        rows.append(
            StudentGrades(
                student_name=name,
                grade_m=values[GradeComponent.M],
                grade_1t=values[GradeComponent.ONE_TEST],
                grade_thi=values[GradeComponent.FINAL],
            )
        )
    return rows


def read_grades(source: Source, semester: str = "HK1", config: ReconcileConfig = DEFAULT_CONFIG) -> list[StudentGrades]:
    workbook = open_workbook(source, config)
    sheet = find_grades_sheet(workbook, parse_semester(semester))
    if sheet is None:
        return []
    return read_grades_from_sheet(sheet, config)


def read_all_grades(source: Source, config: ReconcileConfig = DEFAULT_CONFIG) -> dict[str, list[StudentGrades]]:
    workbook = open_workbook(source, config)
    result = {}
    for semester in SEMESTERS:
        sheet = find_grades_sheet(workbook, semester)
        result[semester] = read_grades_from_sheet(sheet, config) if sheet is not None else []
    return result


def grades_frame(rows: list[StudentGrades]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "student_name": row.student_name,
                GradeComponent.M.value: row.grade_m,
                GradeComponent.ONE_TEST.value: row.grade_1t,
                GradeComponent.FINAL.value: row.grade_thi,
            }
            for row in rows
        ],
        columns=["student_name", GradeComponent.M.value, GradeComponent.ONE_TEST.value, GradeComponent.FINAL.value],
    )


# ── Roster ───────────────────────────────────────────────────────────────────


@dataclass
class RosterEntry:
    stt: int
    baptismal_name: str
    full_name: str
    date_of_birth: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "stt": self.stt,
            "baptismal_name": self.baptismal_name,
            "full_name": self.full_name,
            "date_of_birth": self.date_of_birth,
        }


def format_birth_date(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        low, high = EXCEL_SERIAL_RANGE
        if low < value < high:
            return from_excel(value).strftime("%d/%m/%Y")
    return cell_text(value)


def parse_stt(value: Any, fallback: int) -> Optional[int]:
    if value is None or cell_text(value) == "":
        return fallback
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    match = LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else None


def is_name_label(label: str, col: int) -> bool:
    if "ho" in label and "ten" in label:
        return True
    return "ten" in label and "ten thanh" not in label and col > 1


def detect_roster_header(sheet: Worksheet) -> tuple[int, int, int]:
    """(header row, STT column, name column); falls back to row 1 with STT in A and names in B."""
    for row in range(1, min(ROSTER_HEADER_SCAN_ROWS, sheet.max_row) + 1):
        stt_col = name_col = None
        for col, value in enumerate(row_values(sheet, row), start=1):
            label = normalize_name(cell_text(value))
            if not label:
                continue
            if stt_col is None and ("stt" in label or label == "so tt"):
                stt_col = col
            elif name_col is None and is_name_label(label, col):
                name_col = col
        if stt_col is not None and name_col is not None:
            return row, stt_col, name_col
    return 1, 1, 2


def header_column(sheet: Worksheet, header_row: int, needle: str, default: int) -> int:
    for col, value in enumerate(row_values(sheet, header_row), start=1):
        if needle in normalize_name(cell_text(value)):
            return col
    return default


def has_split_name(sheet: Worksheet, header_row: int, name_col: int) -> bool:
    sampled = with_second = 0
    for row in range(header_row + 1, sheet.max_row + 1):
        if sampled >= ROSTER_SPLIT_NAME_SAMPLES:
            break
        if not cell_text(cell_value(sheet, row, name_col)):
            continue
        sampled += 1
        if cell_text(cell_value(sheet, row, name_col + 1)):
            with_second += 1
    return sampled > 0 and with_second > sampled / 2


def read_roster(source: Source, config: ReconcileConfig = DEFAULT_CONFIG) -> list[RosterEntry]:
    workbook = open_workbook(source, config)
    sheet = workbook.worksheets[0]
    header_row, stt_col, name_col = detect_roster_header(sheet)
    baptismal_col = header_column(sheet, header_row, "ten thanh", BAPTISMAL_COLUMN)
    birth_col = header_column(sheet, header_row, "ngay sinh", BIRTH_DATE_COLUMN)
    split = has_split_name(sheet, header_row, name_col)

    entries = []
    for row in range(header_row + 1, sheet.max_row + 1):
        name = cell_text(cell_value(sheet, row, name_col))
        if not name:
            continue
        stt = parse_stt(cell_value(sheet, row, stt_col), row - header_row)
        if stt is None:
            continue
        if split:
            second = cell_text(cell_value(sheet, row, name_col + 1))
            name = f"{name} {second}".strip()
        entries.append(
            RosterEntry(
                stt=stt,
                baptismal_name=cell_text(cell_value(sheet, row, baptismal_col)),
                full_name=" ".join(name.split()),
                date_of_birth=format_birth_date(cell_value(sheet, row, birth_col)),
            )
        )
    if not entries:
        raise WorkbookReadError(f"No student rows found in sheet '{sheet.title}'")
    return entries


# ── Attendance columns ───────────────────────────────────────────────────────


@dataclass
class ColumnCheck:
    valid: bool
    message: str
    date: str
    attendance_type: str
    sheet: Optional[str] = None
    column: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "message": self.message,
            "date": self.date,
            "type": self.attendance_type,
            "sheet": self.sheet,
            "column": self.column,
        }


def available_attendance_columns(source: Source, config: ReconcileConfig = DEFAULT_CONFIG) -> list[AttendanceColumn]:
    workbook = open_workbook(source, config)
    sheet = find_attendance_sheet(workbook)
    if sheet is None:
        return []
    header = find_attendance_header_row(sheet, config)
    if not header:
        return []
    return list_attendance_columns(sheet, header.index)


def check_attendance_column(
    source: Source,
    target_date: Any,
    attendance_type: Any,
    config: ReconcileConfig = DEFAULT_CONFIG,
) -> ColumnCheck:
    """Tell whether the master file has a column for this date and attendance type."""
    kind = AttendanceType.parse(attendance_type)
    wanted = target_date_key(target_date)
    workbook = open_workbook(source, config)
    sheet = find_attendance_sheet(workbook)
    if sheet is None:
        return ColumnCheck(False, "No 'Diem danh' sheet in the workbook", wanted, kind.value)
    header = find_attendance_header_row(sheet, config)
    if not header:
        return ColumnCheck(False, header.reason, wanted, kind.value, sheet=sheet.title)
    column = find_attendance_column(sheet, header.index, wanted, kind, config)
    if not column:
        return ColumnCheck(
            False,
            f"No attendance column for {wanted} - {kind.value}; check the date and type labels in the sheet",
            wanted,
            kind.value,
            sheet=sheet.title,
        )
    return ColumnCheck(True, "Matching attendance column found", wanted, kind.value, sheet=sheet.title, column=column.index)
