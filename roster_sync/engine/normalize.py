from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from typing import Any

DATE_LIKE_RE = re.compile(r"\d{1,2}/\d{1,2}")
DAY_MONTH_RE = re.compile(r"(\d{1,2})/(\d{1,2})")
YEAR_FIRST_DATE_RE = re.compile(r"^\s*(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?!\d)")
LEADING_YEAR_RE = re.compile(r"^\s*\d{4}[-/.]")


def normalize_name(value: Any) -> str:
    """
    Canonical form of a human name or column label for comparison.

    1) lowercase
    2) "đ"/"Đ" to "d" (no decomposition exists for it)
    3) NFD decomposition, combining marks dropped
    4) whitespace runs collapsed, ends trimmed
    """
    if value is None:
        return ""
    text = str(value).lower().replace("đ", "d").replace("Đ", "d")
    text = unicodedata.normalize("NFD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return " ".join(text.split())


def names_equal(a: Any, b: Any) -> bool:
    return normalize_name(a) == normalize_name(b)


def contains_token(text: str, token: str) -> bool:
    """True when `token` appears in `text` without touching other letters or digits."""
    if not token:
        return False
    pattern = r"(?<![a-z0-9])" + re.escape(token) + r"(?![a-z0-9])"
    return re.search(pattern, text) is not None


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return f"{value.day}/{value.month}"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def is_date_like(value: Any) -> bool:
    return DATE_LIKE_RE.search(cell_text(value)) is not None


def date_key(value: Any) -> str | None:
    """Day/month key of a sheet cell: "07/09", "7/9/2025", "2025-09-07" and 7 Sep all give "7/9"."""
    if isinstance(value, (datetime, date)):
        return f"{value.day}/{value.month}"
    text = cell_text(value)
    year_first = YEAR_FIRST_DATE_RE.match(text)
    if year_first:
        month, day = int(year_first.group(2)), int(year_first.group(3))
        if not (1 <= month <= 12 and 1 <= day <= 31):
            return None
        return f"{day}/{month}"
    # "2025/9" would otherwise read as 25 September
    if LEADING_YEAR_RE.match(text):
        return None
    match = DAY_MONTH_RE.search(text)
    if not match:
        return None
    return f"{int(match.group(1))}/{int(match.group(2))}"


def target_date_key(value: Any) -> str:
    """Day/month key of a caller-supplied date (yyyy-mm-dd, yyyy/mm/dd, dd/mm[/yyyy] or date)."""
    key = date_key(value if isinstance(value, (datetime, date)) else str(value or "").strip())
    if key is None:
        raise ValueError(f"Unrecognised date: {value!r}")
    return key
