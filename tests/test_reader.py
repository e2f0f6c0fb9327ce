from __future__ import annotations

import sys
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from workbook_fixtures import master_workbook_bytes, roster_workbook_bytes

from roster_sync.engine.reader import (
    WorkbookReadError,
    available_attendance_columns,
    check_attendance_column,
    extract_grade,
    format_birth_date,
    grades_frame,
    looks_like_name_part,
    open_workbook,
    read_all_grades,
    read_grades,
    read_roster,
)


class GradeReaderTests(unittest.TestCase):
    def test_read_grades_skips_students_without_any_grade(self):
        rows = read_grades(master_workbook_bytes(), "HK1")
        self.assertEqual([r.student_name for r in rows], ["Nguyen Thi An", "Tran Van Binh"])
        self.assertEqual((rows[1].grade_m, rows[1].grade_1t, rows[1].grade_thi), (7.5, 6, None))

    def test_read_grades_accepts_a_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "master.xlsx"
            path.write_bytes(master_workbook_bytes())
            self.assertEqual(len(read_grades(path, "hk1")), 2)

    def test_missing_semester_sheet_reads_as_empty(self):
        grades = read_all_grades(master_workbook_bytes(include_hk2=False))
        self.assertEqual(set(grades), {"HK1", "HK2"})
        self.assertEqual(grades["HK2"], [])

    def test_grades_frame_has_one_column_per_component(self):
        frame = grades_frame(read_grades(master_workbook_bytes(), "HK1"))
        self.assertEqual(list(frame.columns), ["student_name", "M", "1T", "Thi"])
        self.assertEqual(frame.loc[0, "M"], 8)

    def test_extract_grade_filters_noise(self):
        self.assertEqual(extract_grade("7,5"), 7.5)
        self.assertIsNone(extract_grade("vang"))
        self.assertIsNone(extract_grade(12))
        self.assertIsNone(extract_grade(True))

    def test_name_part_heuristic(self):
        self.assertTrue(looks_like_name_part("An"))
        self.assertFalse(looks_like_name_part("2015/02/01 00:00"))
        self.assertFalse(looks_like_name_part("Mon Sep 01 2025 GMT+0700"))
        self.assertFalse(looks_like_name_part(8))


class RosterReaderTests(unittest.TestCase):
    def test_read_roster_joins_split_names_and_formats_birth_dates(self):
        entries = read_roster(roster_workbook_bytes())
        self.assertEqual([e.stt for e in entries], [1, 2, 3])
        self.assertEqual(entries[0].full_name, "Nguyen Thi An")
        self.assertEqual(entries[0].baptismal_name, "Maria")
        self.assertEqual(entries[0].date_of_birth, "01/02/2015")
        self.assertEqual(entries[1].date_of_birth, "15/03/2015")
        self.assertEqual(entries[2].date_of_birth, "27/12/2014")

    def test_format_birth_date(self):
        self.assertEqual(format_birth_date(datetime(2014, 5, 9)), "09/05/2014")
        self.assertEqual(format_birth_date(12), "12")

    def test_roster_without_students_is_an_error(self):
        with self.assertRaises(WorkbookReadError):
            read_roster(master_workbook_bytes())


class AttendanceInspectionTests(unittest.TestCase):
    def test_available_columns(self):
        columns = available_attendance_columns(master_workbook_bytes())
        self.assertEqual([c.letter for c in columns], ["F", "G", "H", "I", "J", "K"])
        self.assertEqual([c.date for c in columns], ["7/9", "7/9", "14/9", "14/9", "21/9", "21/9"])

    def test_check_attendance_column(self):
        found = check_attendance_column(master_workbook_bytes(), "2025-09-14", "Le Chua Nhat")
        self.assertTrue(found.valid)
        self.assertEqual((found.sheet, found.column), ("Diem danh", 9))

        missing = check_attendance_column(master_workbook_bytes(), "2025-09-14", "Le Thu 5")
        self.assertFalse(missing.valid)
        self.assertIn("14/9", missing.message)

    def test_unreadable_workbook(self):
        with self.assertRaises(WorkbookReadError) as ctx:
            open_workbook(b"not a workbook")
        self.assertIn("Could not read workbook", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
