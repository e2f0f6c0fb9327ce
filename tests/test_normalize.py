from __future__ import annotations

import sys
import unittest
from datetime import date, datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from roster_sync.engine.normalize import (
    cell_text,
    contains_token,
    date_key,
    is_date_like,
    names_equal,
    normalize_name,
    target_date_key,
)


class NormalizeNameTests(unittest.TestCase):
    def test_strips_diacritics_and_collapses_spaces(self):
        self.assertEqual(normalize_name("  Nguyễn   Thị  Đào "), "nguyen thi dao")

    def test_d_with_stroke_maps_to_plain_d(self):
        self.assertEqual(normalize_name("ĐIỂM DANH"), "diem danh")
        self.assertEqual(normalize_name("đ"), "d")

    def test_normalizing_twice_changes_nothing(self):
        for raw in ["Maria Nguyễn Thị Ánh", "  ĐỖ   văn  Đức ", "Lễ CN", ""]:
            once = normalize_name(raw)
            self.assertEqual(normalize_name(once), once)

    def test_none_is_empty(self):
        self.assertEqual(normalize_name(None), "")

    def test_names_equal_ignores_case_and_accents(self):
        self.assertTrue(names_equal("Maria Nguyễn Thị An", "maria nguyen thi an"))
        self.assertFalse(names_equal("Maria Nguyen Thi An", "Maria Nguyen Thi Anh"))


class DateKeyTests(unittest.TestCase):
    def test_sheet_labels_share_one_key(self):
        self.assertEqual(date_key("07/09"), "7/9")
        self.assertEqual(date_key("7/9/2025"), "7/9")
        self.assertEqual(date_key(datetime(2025, 9, 7)), "7/9")
        self.assertIsNone(date_key("Tong"))

    def test_target_date_accepts_iso_and_day_month(self):
        self.assertEqual(target_date_key("2025-09-07"), "7/9")
        self.assertEqual(target_date_key("07/09/2025"), "7/9")
        self.assertEqual(target_date_key(date(2025, 9, 7)), "7/9")

    def test_target_date_rejects_garbage(self):
        with self.assertRaises(ValueError):
            target_date_key("next sunday")

    def test_year_first_dates_are_not_read_as_day_month(self):
        self.assertEqual(target_date_key("2025/09/05"), "5/9")
        self.assertEqual(target_date_key("2025.9.5"), "5/9")
        self.assertEqual(date_key("2025/09/05"), "5/9")
        for raw in ["2025/09", "2025/13/01"]:
            with self.assertRaises(ValueError):
                target_date_key(raw)

    def test_is_date_like(self):
        self.assertTrue(is_date_like("14/9"))
        self.assertTrue(is_date_like(datetime(2025, 9, 14)))
        self.assertFalse(is_date_like("STT"))


class CellTextTests(unittest.TestCase):
    def test_integral_float_loses_decimal(self):
        self.assertEqual(cell_text(3.0), "3")
        self.assertEqual(cell_text(7.5), "7.5")
        self.assertEqual(cell_text(None), "")
        self.assertEqual(cell_text("  Maria "), "Maria")

    def test_contains_token_respects_word_edges(self):
        self.assertTrue(contains_token("le cn (sang)", "le cn"))
        self.assertFalse(contains_token("chu nhat", "h"))
        self.assertFalse(contains_token("hoc gl", ""))


if __name__ == "__main__":
    unittest.main()
