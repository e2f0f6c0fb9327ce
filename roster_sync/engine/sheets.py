from __future__ import annotations

from typing import Optional

from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from roster_sync.engine.models import Topic, TopicKind
from roster_sync.engine.normalize import normalize_name

ATTENDANCE_MARKERS = ("diem danh", "diemdanh")
GRADE_MARKER = "diem"


def is_attendance_sheet_name(name: str) -> bool:
    normalized = normalize_name(name)
    return any(marker in normalized for marker in ATTENDANCE_MARKERS)


def semester_tokens(semester: str) -> tuple[str, ...]:
    """Loose spellings of a semester in a sheet name: "hk1", "hk 1", "hoc ky 1"."""
    number = semester[-1]
    return (f"hk{number}", f"hk {number}", f"hoc ky {number}", f"hoc ki {number}")


def find_attendance_sheet(workbook: Workbook) -> Optional[Worksheet]:
    for worksheet in workbook.worksheets:
        if is_attendance_sheet_name(worksheet.title):
            return worksheet
    return None


def find_grades_sheet(workbook: Workbook, semester: str) -> Optional[Worksheet]:
    # Attendance and grade sheet names share "diem"; attendance sheets never qualify.
    candidates = [ws for ws in workbook.worksheets if not is_attendance_sheet_name(ws.title)]
    exact_token = semester.lower()
    for worksheet in candidates:
        name = normalize_name(worksheet.title)
        if GRADE_MARKER in name and exact_token in name:
            return worksheet
    loose_tokens = semester_tokens(semester)
    for worksheet in candidates:
        name = normalize_name(worksheet.title)
        if any(token in name for token in loose_tokens):
            return worksheet
    return None


def find_sheet(workbook: Workbook, topic: Topic) -> Optional[Worksheet]:
    if topic.kind is TopicKind.ATTENDANCE:
        return find_attendance_sheet(workbook)
    if not topic.semester:
        return None
    return find_grades_sheet(workbook, topic.semester)
