#!/usr/bin/env python3
"""
Generates sample-data/master_sample.xlsx and sample-data/writes_sample.json
for trying roster-sync by hand.

Run from the repo root:
    python sample-data/generate_master_workbook.py
    roster-sync apply sample-data/master_sample.xlsx --writes sample-data/writes_sample.json

Layout baked in:
  Sheet "Diem danh"
    - Title row, date row 3, attendance type row 4
    - Date headers merged across two type columns (F3:G3, H3:I3)
    - One real date cell (J3), the rest typed as "d/m" text
    - Hand-typed "P" in K5, total formulas in column L
  Sheets "Diem HK1" / "Diem HK2"
    - "Ho va Ten" merged over surname / given name
    - M, 1T, Thi labels plus an average formula column
"""

import json
from datetime import datetime
from pathlib import Path

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill

OUTPUT = Path(__file__).parent / "master_sample.xlsx"
WRITES_OUTPUT = Path(__file__).parent / "writes_sample.json"

STUDENTS = [
    ("Maria", "Nguyễn Thị", "An"),
    ("Giuse", "Trần Văn", "Bình"),
    ("Anna", "Lê Thị", "Hoa"),
    ("Phêrô", "Vũ Minh", "Khôi"),
    ("Têrêsa", "Phạm Ngọc", "Lan"),
]

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill("solid", fgColor="1565C0")

wb = openpyxl.Workbook()

# ── Sheet 1: Diem danh ───────────────────────────────────────────────────────
ws = wb.active
ws.title = "Điểm danh"
ws["A1"] = "ĐIỂM DANH LỚP XƯNG TỘI 3"
ws["A1"].font = Font(bold=True, size=14)

header = ["STT", "Mã", "Tên Thánh", "Họ", "Tên", "7/9", None, "14/9", None, datetime(2025, 9, 21), "21/9", "Tổng"]
for col, value in enumerate(header, start=1):
    cell = ws.cell(row=3, column=col, value=value)
    cell.font = HEADER_FONT
    cell.fill = HEADER_FILL
    cell.alignment = Alignment(horizontal="center")
ws.cell(row=3, column=10).number_format = "d/m"
ws.merge_cells("F3:G3")
ws.merge_cells("H3:I3")
for col, label in zip(range(6, 12), ["H", "L", "H", "Lễ CN", "Học GL", "L"]):
    ws.cell(row=4, column=col, value=label).font = Font(bold=True)

for offset, (title, surname, given) in enumerate(STUDENTS):
    row = 5 + offset
    for col, value in enumerate([offset + 1, f"HS{offset + 1:02d}", title, surname, given], start=1):
        ws.cell(row=row, column=col, value=value)
    ws.cell(row=row, column=12, value=f'=COUNTIF(F{row}:K{row},1)+COUNTIF(F{row}:K{row},"P")')
ws["K5"] = "P"

# ── Sheets 2-3: Diem HK1 / Diem HK2 ──────────────────────────────────────────
for title in ["Điểm HK1", "Điểm HK2"]:
    sheet = wb.create_sheet(title)
    sheet["A1"] = f"BẢNG ĐIỂM {title.split()[-1]}"
    grade_header = ["STT", "Mã HS", "Tên Thánh", "Họ và Tên", None, "Ngày sinh", "M", "1T", "Thi", "TB"]
    for col, value in enumerate(grade_header, start=1):
        cell = sheet.cell(row=2, column=col, value=value)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
    sheet.merge_cells("D2:E2")
    for offset, (title_name, surname, given) in enumerate(STUDENTS):
        row = 3 + offset
        values = [offset + 1, f"HS{offset + 1:02d}", title_name, surname, given, "01/01/2015"]
        for col, value in enumerate(values, start=1):
            sheet.cell(row=row, column=col, value=value)
        sheet.cell(row=row, column=10, value=f"=IFERROR(AVERAGE(G{row}:I{row}),\"\")")

wb.save(OUTPUT)

writes = {
    "attendance_sessions": [
        {
            "date": "2025-09-07",
            "type": "Hoc Giao Ly",
            "records": [
                {"student": "Maria Nguyễn Thị An", "present": True},
                {"student": "Giuse Trần Văn Bình", "present": True},
                {"student": "Anna Lê Thị Hoa", "present": False},
            ],
        },
        {
            "date": "2025-09-14",
            "type": "Le Chua Nhat",
            "records": [{"student": "Phêrô Vũ Minh Khôi", "present": True}],
        },
    ],
    "grade_sessions": [
        {
            "semester": "HK1",
            "grades": [
                {"student": "Têrêsa Phạm Ngọc Lan", "grade_m": 9, "grade_1t": 8.5, "grade_thi": 0},
                {"student": "Maria Nguyễn Thị An", "grade_m": 7},
            ],
        }
    ],
}
WRITES_OUTPUT.write_text(json.dumps(writes, ensure_ascii=False, indent=2), encoding="utf-8")

print(f"Created: {OUTPUT}")
print(f"Created: {WRITES_OUTPUT}")
