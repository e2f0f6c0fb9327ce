from __future__ import annotations

import re
from datetime import date
from io import BytesIO
from typing import Optional, Sequence

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from roster_sync.engine.models import AttendanceSession
from roster_sync.engine.normalize import normalize_name, target_date_key

SUMMARY_SHEET = "Tong hop"
DETAIL_SHEET = "Chi tiet"
PRESENT_MARK = "X"


def _header_font() -> Font:
    return Font(bold=True, color="FFFFFF")


def _header_fill(hex_color: str) -> PatternFill:
    return PatternFill("solid", fgColor=hex_color)


def _style_header_row(ws, row: int, width: int, header_color: str) -> None:
    fill = _header_fill(header_color)
    font = _header_font()
    for col in range(1, width + 1):
        cell = ws.cell(row=row, column=col)
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _set_widths(ws, widths: Sequence[int]) -> None:
    for i, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def session_label(session: AttendanceSession) -> str:
    return f"{target_date_key(session.date)}\n{session.attendance_type.value}"


def _presence_by_session(sessions: Sequence[AttendanceSession]) -> list[dict[str, bool]]:
    return [
        {normalize_name(record.student_name): record.is_present for record in session.records}
        for session in sessions
    ]


def export_attendance_summary(
    class_name: str,
    students: Sequence[str],
    sessions: Sequence[AttendanceSession],
) -> bytes:
    """
    Build a fresh attendance workbook for one class.

    "Tong hop": one row per student, one column per session, X when present,
    followed by a present-count row. "Chi tiet": a block per session listing
    every record.
    """
    wb = openpyxl.Workbook()
    presence = _presence_by_session(sessions)

    summary = wb.active
    summary.title = SUMMARY_SHEET
    header = ["STT", "Ho va Ten"] + [session_label(session) for session in sessions]
    summary.append(header)
    _style_header_row(summary, 1, len(header), "1565C0")
    summary.freeze_panes = "C2"
    for stt, name in enumerate(students, start=1):
        key = normalize_name(name)
        marks = [PRESENT_MARK if lookup.get(key) else None for lookup in presence]
        summary.append([stt, name, *marks])
    summary.append([])
    summary.append([None, "Tong co mat", *[sum(1 for r in s.records if r.is_present) for s in sessions]])
    _set_widths(summary, [5, 25] + [15] * len(sessions))

    detail = wb.create_sheet(DETAIL_SHEET)
    for index, session in enumerate(sessions):
        if index > 0:
            detail.append([])
        detail.append([f"Ngay: {target_date_key(session.date)} - {session.attendance_type.value} ({class_name})"])
        detail.cell(row=detail.max_row, column=1).font = Font(bold=True)
        detail.append(["STT", "Ho va Ten", "Co Mat"])
        _style_header_row(detail, detail.max_row, 3, "4CAF50")
        for stt, record in enumerate(session.records, start=1):
            detail.append([stt, record.student_name, "CO" if record.is_present else "VANG"])
    _set_widths(detail, [5, 25, 10])

    out = BytesIO()
    wb.save(out)
    return out.getvalue()


def summary_file_name(class_name: str, on: Optional[date] = None) -> str:
    stamp = (on or date.today()).isoformat()
    safe = re.sub(r"[^a-zA-Z0-9]", "_", class_name)
    return f"DiemDanh_{safe}_{stamp}.xlsx"
