from __future__ import annotations

import json
import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from roster_sync.engine.models import AttendanceMark, AttendanceType, GradeComponent, GradeMark
from roster_sync.inputs import (
    WriteParseError,
    decode_text,
    load_writes,
    load_writes_bytes,
    parse_bool,
    parse_grade,
    parse_write,
    writes_from_payload,
    writes_to_payload,
)


class ValueParsingTests(unittest.TestCase):
    def test_parse_grade(self):
        self.assertEqual(parse_grade("7,5"), 7.5)
        self.assertEqual(parse_grade(0), 0)
        self.assertIsNone(parse_grade(""))
        self.assertIsNone(parse_grade(None))
        for bad in ("11", "abc", True, -1):
            with self.assertRaises(ValueError):
                parse_grade(bad)

    def test_parse_bool(self):
        self.assertTrue(parse_bool("x"))
        self.assertTrue(parse_bool("Co"))
        self.assertFalse(parse_bool(""))
        self.assertFalse(parse_bool(0))
        with self.assertRaises(ValueError):
            parse_bool("maybe")


class RecordParsingTests(unittest.TestCase):
    def test_attendance_record_with_camel_case_keys(self):
        write = parse_write(
            {"studentName": "Maria Nguyen Thi An", "attendanceDate": "2025-09-07", "attendanceType": "Hoc Giao Ly", "isPresent": True}
        )
        self.assertEqual(write, AttendanceMark("Maria Nguyen Thi An", "2025-09-07", AttendanceType.HOC_GIAO_LY, True))

    def test_kind_is_inferred_from_semester(self):
        write = parse_write({"student": "Giuse Tran Van Binh", "semester": "HK2", "component": "1T", "value": "8"})
        self.assertEqual(write, GradeMark("Giuse Tran Van Binh", "HK2", GradeComponent.ONE_TEST, 8.0))

    def test_errors_carry_the_record_index(self):
        with self.assertRaises(WriteParseError) as ctx:
            writes_from_payload([{"kind": "attendance", "student": "Maria", "date": "7/9", "type": "Le Thu 6"}])
        self.assertTrue(str(ctx.exception).startswith("record 0:"))
        with self.assertRaises(WriteParseError):
            parse_write({"kind": "grade", "semester": "HK1", "component": "M"}, 3)

    def test_session_payload_expands_to_writes(self):
        payload = {
            "attendanceSessions": [
                {
                    "attendanceDate": "2025-09-07",
                    "attendanceType": "Le Chua Nhat",
                    "records": [{"fullName": "Maria Nguyen Thi An", "isPresent": True}],
                }
            ],
            "gradesSessions": [
                {"semester": "HK1", "grades": [{"studentName": "Anna Le Thi Hoa", "gradeM": 8, "gradeThi": 0}]}
            ],
        }
        writes = writes_from_payload(payload)
        self.assertEqual(len(writes), 4)
        self.assertIsInstance(writes[0], AttendanceMark)
        self.assertEqual([w.value for w in writes[1:]], [8, None, 0])

    def test_writes_payload_round_trips_through_json(self):
        writes = [
            AttendanceMark("Maria Nguyen Thi An", "7/9", AttendanceType.LE_THU_5, False),
            GradeMark("Anna Le Thi Hoa", "HK1", GradeComponent.M, None),
        ]
        self.assertEqual(writes_from_payload({"writes": writes_to_payload(writes)}), writes)


class FileLoadingTests(unittest.TestCase):
    def test_csv_with_vietnamese_names(self):
        raw = (
            "kind,student,date,type,present,semester,component,value\n"
            "attendance,Maria Nguyễn Thị An,2025-09-07,Hoc Giao Ly,1,,,\n"
            "grade,Giuse Trần Văn Bình,,,,HK1,Thi,0\n"
        ).encode("utf-8")
        writes = load_writes_bytes(raw, ".csv")
        self.assertEqual(writes[0].student_name, "Maria Nguyễn Thị An")
        self.assertTrue(writes[0].is_present)
        self.assertEqual(writes[1].value, 0)

    def test_decode_text_falls_back_for_non_utf8(self):
        raw = "student\nJosé\n".encode("latin-1")
        self.assertIn("student", decode_text(raw))

    def test_unsupported_suffix_and_bad_json(self):
        with self.assertRaises(WriteParseError):
            load_writes_bytes(b"[]", ".xml")
        with self.assertRaises(WriteParseError):
            load_writes_bytes(b"{not json", ".json")

    def test_load_writes_from_disk(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "writes.json"
            path.write_text(
                json.dumps([{"kind": "grade", "student": "Maria", "semester": "HK1", "component": "M", "value": 9}]),
                encoding="utf-8",
            )
            self.assertEqual(len(load_writes(path)), 1)
            with self.assertRaises(FileNotFoundError):
                load_writes(Path(tmpdir) / "missing.json")


if __name__ == "__main__":
    unittest.main()
