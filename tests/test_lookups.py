from __future__ import annotations

import sys
import unittest
from pathlib import Path

import openpyxl

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from workbook_fixtures import build_master_workbook

from roster_sync.config import DEFAULT_CONFIG, config_from_mapping
from roster_sync.engine.columns import (
    find_attendance_column,
    find_grade_column,
    find_labelled_column,
    label_matches,
    list_attendance_columns,
)
from roster_sync.engine.headers import find_attendance_header_row, find_grade_header_row, type_row_for
from roster_sync.engine.models import AttendanceType, GradeComponent, Topic
from roster_sync.engine.rows import find_student_row, row_full_name
from roster_sync.engine.sheets import find_attendance_sheet, find_grades_sheet, find_sheet


class SheetLookupTests(unittest.TestCase):
    def setUp(self):
        self.workbook = openpyxl.Workbook()
        self.workbook.active.title = "Danh sach"
        for title in ["Điểm danh HK1", "Diem HK1", "HK2 tong ket"]:
            self.workbook.create_sheet(title)

    def test_attendance_sheet_found_by_accentless_name(self):
        self.assertEqual(find_attendance_sheet(self.workbook).title, "Điểm danh HK1")

    def test_grade_sheet_never_picks_attendance_sheet(self):
        self.assertEqual(find_grades_sheet(self.workbook, "HK1").title, "Diem HK1")

    def test_grade_sheet_loose_semester_pass(self):
        self.assertEqual(find_grades_sheet(self.workbook, "HK2").title, "HK2 tong ket")

    def test_missing_sheets_return_none(self):
        workbook = openpyxl.Workbook()
        self.assertIsNone(find_attendance_sheet(workbook))
        self.assertIsNone(find_sheet(workbook, Topic.grades("HK1")))


class HeaderLookupTests(unittest.TestCase):
    def setUp(self):
        self.workbook = build_master_workbook()

    def test_attendance_header_is_first_row_with_three_dates(self):
        header = find_attendance_header_row(self.workbook["Diem danh"])
        self.assertTrue(header)
        self.assertEqual(header.index, 2)
        self.assertEqual(type_row_for(header.index), 3)

    def test_attendance_header_needs_enough_dates(self):
        ws = openpyxl.Workbook().active
        ws.append(["STT", "Ho ten", "7/9", "14/9"])
        self.assertFalse(find_attendance_header_row(ws))
        relaxed = config_from_mapping({"min_date_cells": 2})
        self.assertEqual(find_attendance_header_row(ws, relaxed).index, 1)

    def test_attendance_header_outside_scan_window(self):
        ws = openpyxl.Workbook().active
        for _ in range(5):
            ws.append(["ghi chu"])
        ws.append(["7/9", "14/9", "21/9"])
        self.assertEqual(find_attendance_header_row(ws).index, 6)
        narrow = config_from_mapping({"header_scan_rows": 5})
        self.assertFalse(find_attendance_header_row(ws, narrow))

    def test_grade_header_needs_stt_name_and_m(self):
        self.assertEqual(find_grade_header_row(self.workbook["Diem HK1"]).index, 2)
        ws = openpyxl.Workbook().active
        ws.append(["STT", "Ho va Ten", "1T", "Thi"])
        self.assertFalse(find_grade_header_row(ws))


class ColumnLookupTests(unittest.TestCase):
    def setUp(self):
        self.sheet = build_master_workbook()["Diem danh"]

    def find(self, target_date, kind):
        return find_attendance_column(self.sheet, 2, target_date, kind, DEFAULT_CONFIG)

    def test_column_with_its_own_date(self):
        self.assertEqual(self.find("7/9", AttendanceType.HOC_GIAO_LY).index, 6)
        self.assertEqual(self.find("2025-09-14", AttendanceType.HOC_GIAO_LY).index, 8)

    def test_date_carries_across_merged_header(self):
        self.assertEqual(self.find("7/9", AttendanceType.LE_CHUA_NHAT).index, 7)
        self.assertEqual(self.find("14/9", AttendanceType.LE_CHUA_NHAT).index, 9)

    def test_real_date_cell_and_long_label(self):
        self.assertEqual(self.find("21/09/2025", AttendanceType.HOC_GIAO_LY).index, 10)
        self.assertEqual(self.find("21/9", AttendanceType.LE_CHUA_NHAT).index, 11)

    def test_carry_forward_example(self):
        ws = openpyxl.Workbook().active
        ws.append(["5/9", None, "12/9"])
        ws.append(["HOC GL", "LE CN", "HOC GL"])
        self.assertEqual(find_attendance_column(ws, 1, "5/9", AttendanceType.HOC_GIAO_LY).index, 1)
        self.assertEqual(find_attendance_column(ws, 1, "5/9", AttendanceType.LE_CHUA_NHAT).index, 2)
        self.assertEqual(find_attendance_column(ws, 1, "12/9", AttendanceType.HOC_GIAO_LY).index, 3)
        self.assertFalse(find_attendance_column(ws, 1, "12/9", AttendanceType.LE_CHUA_NHAT))

    def test_missing_type_or_date(self):
        self.assertFalse(self.find("7/9", AttendanceType.LE_THU_5))
        self.assertFalse(self.find("28/9", AttendanceType.HOC_GIAO_LY))

    def test_single_letter_labels_match_whole_label_only(self):
        self.assertTrue(label_matches("h", ("h", "hoc gl")))
        self.assertFalse(label_matches("chu nhat", ("h",)))
        self.assertTrue(label_matches("le cn (sang)", ("l", "le cn")))

    def test_list_attendance_columns_reports_inherited_dates(self):
        columns = list_attendance_columns(self.sheet, 2)
        self.assertEqual([c.column for c in columns], [6, 7, 8, 9, 10, 11])
        by_column = {c.column: c for c in columns}
        self.assertTrue(by_column[7].inherited_date)
        self.assertEqual(by_column[7].date, "7/9")
        self.assertFalse(by_column[10].inherited_date)
        self.assertEqual(by_column[9].to_dict()["letter"], "I")

    def test_grade_columns_by_label(self):
        sheet = build_master_workbook()["Diem HK1"]
        self.assertEqual(find_grade_column(sheet, 2, GradeComponent.M).index, 7)
        self.assertEqual(find_grade_column(sheet, 2, GradeComponent.ONE_TEST).index, 8)
        self.assertEqual(find_grade_column(sheet, 2, GradeComponent.FINAL).index, 9)

    def test_labelled_column_prefers_exact_then_shortest(self):
        ws = openpyxl.Workbook().active
        ws.append(["Diem mieng HK1 (he so 1)", "Diem mieng", "Mieng"])
        self.assertEqual(find_labelled_column(ws, 1, ("mieng",)).index, 3)
        ws.delete_cols(3)
        self.assertEqual(find_labelled_column(ws, 1, ("mieng",)).index, 2)

    def test_legacy_grade_columns_only_when_enabled(self):
        ws = openpyxl.Workbook().active
        ws.append(["STT", "Ho va Ten", "Ghi chu"])
        self.assertFalse(find_grade_column(ws, 1, GradeComponent.ONE_TEST))
        legacy = config_from_mapping({"use_legacy_grade_columns": True})
        self.assertEqual(find_grade_column(ws, 1, GradeComponent.ONE_TEST, legacy).index, 8)


class RowLookupTests(unittest.TestCase):
    def setUp(self):
        self.sheet = build_master_workbook()["Diem danh"]

    def test_full_name_joins_title_surname_and_given_name(self):
        self.assertEqual(row_full_name(self.sheet, 4), "Maria Nguyen Thi An")

    def test_exact_match_with_and_without_title(self):
        self.assertEqual(find_student_row(self.sheet, 2, "Maria Nguyễn Thị An").index, 4)
        self.assertEqual(find_student_row(self.sheet, 2, "Nguyen Thi An").index, 4)

    def test_first_columns_fallback_for_attendance(self):
        self.assertFalse(find_student_row(self.sheet, 2, "Phero Vu Minh"))
        self.assertEqual(find_student_row(self.sheet, 2, "Phero Vu Minh", scan_first_columns=True).index, 7)

    def test_containment_is_last_resort(self):
        self.assertEqual(find_student_row(self.sheet, 2, "Giuse Tran Van Binh (lop 3)").index, 5)
        strict = config_from_mapping({"fuzzy_row_match": False})
        self.assertFalse(find_student_row(self.sheet, 2, "Giuse Tran Van Binh (lop 3)", config=strict))

    def test_scan_can_start_below_the_type_row(self):
        self.sheet["D3"] = "Họ"
        self.assertEqual(find_student_row(self.sheet, 2, "Anna Lê Thị Hoà Bé").index, 3)
        self.assertEqual(find_student_row(self.sheet, 2, "Anna Lê Thị Hoà Bé", first_data_row=type_row_for(2) + 1).index, 6)

    def test_unknown_and_empty_names(self):
        self.assertFalse(find_student_row(self.sheet, 2, "Phanxico Pham Van Z"))
        self.assertEqual(find_student_row(self.sheet, 2, "   ").reason, "empty student name")


if __name__ == "__main__":
    unittest.main()
