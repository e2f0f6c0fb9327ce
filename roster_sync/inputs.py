"""
Parse caller records into typed semantic writes.

Accepted inputs:
  - JSON list of flat write records
  - JSON object with "attendance_sessions" / "grade_sessions" (snake_case or
    the camelCase keys used by the attendance web API)
  - CSV with one write per line (encoding detected with chardet)
"""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import chardet
import pandas as pd

from roster_sync.engine.models import (
    AttendanceMark,
    AttendanceRecord,
    AttendanceSession,
    AttendanceType,
    GradeComponent,
    GradeMark,
    GradeSession,
    SemanticWrite,
    StudentGrades,
    grade_in_range,
    parse_semester,
)
from roster_sync.engine.normalize import target_date_key

WRITE_FILE_SUFFIXES = {".json", ".csv"}
TRUE_WORDS = {"1", "true", "yes", "y", "x", "co", "present"}
FALSE_WORDS = {"0", "false", "no", "n", "", "vang", "absent"}


class WriteParseError(ValueError):
    def __init__(self, message: str, index: Optional[int] = None) -> None:
        if index is not None:
            message = f"record {index}: {message}"
        super().__init__(message)
        self.index = index


def _pick(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def _require_text(record: Mapping[str, Any], *keys: str) -> str:
    value = _pick(record, *keys)
    text = "" if value is None else str(value).strip()
    if not text or text.lower() == "nan":
        raise ValueError(f"missing {keys[0]}")
    return text


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value or "").strip().lower()
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS or text == "nan":
        return False
    raise ValueError(f"not a yes/no value: {value!r}")


def parse_grade(value: Any) -> Optional[float]:
    """None / blank stays None; anything else must be a number in [0, 10]."""
    if isinstance(value, bool):
        raise ValueError("grade must be a number, not a boolean")
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value).strip().replace(",", ".")
        if not text or text.lower() == "nan":
            return None
        try:
            number = float(text)
        except ValueError as exc:
            raise ValueError(f"grade is not a number: {value!r}") from exc
    if isinstance(number, float) and number != number:
        return None
    if not grade_in_range(number):
        raise ValueError(f"grade must be between 0 and 10, got {value!r}")
    return number


def parse_date(value: Any) -> str:
    text = str(value or "").strip()
    target_date_key(text)
    return text


def parse_write(record: Mapping[str, Any], index: Optional[int] = None) -> SemanticWrite:
    try:
        kind = str(_pick(record, "kind", default="")).strip().lower()
        if not kind or kind == "nan":
            kind = "grade" if _pick(record, "semester") not in (None, "") else "attendance"
        student = _require_text(record, "student", "student_name", "studentName", "fullName")
        if kind == "attendance":
            return AttendanceMark(
                student_name=student,
                date=parse_date(_require_text(record, "date", "attendanceDate")),
                attendance_type=AttendanceType.parse(_require_text(record, "type", "attendance_type", "attendanceType")),
                is_present=parse_bool(_pick(record, "present", "is_present", "isPresent", default=False)),
            )
        if kind in {"grade", "grades"}:
            return GradeMark(
                student_name=student,
                semester=parse_semester(_require_text(record, "semester")),
                component=GradeComponent.parse(_require_text(record, "component")),
                value=parse_grade(_pick(record, "value")),
            )
        raise ValueError(f"unknown write kind {kind!r}")
    except ValueError as exc:
        raise WriteParseError(str(exc), index) from exc


def parse_attendance_session(payload: Mapping[str, Any]) -> AttendanceSession:
    records = [
        AttendanceRecord(
            student_name=_require_text(item, "student", "student_name", "studentName", "fullName"),
            is_present=parse_bool(_pick(item, "present", "is_present", "isPresent", default=False)),
        )
        for item in payload.get("records", [])
    ]
    return AttendanceSession(
        date=parse_date(_require_text(payload, "date", "attendanceDate")),
        attendance_type=AttendanceType.parse(_require_text(payload, "type", "attendance_type", "attendanceType")),
        records=records,
    )


def parse_grade_session(payload: Mapping[str, Any]) -> GradeSession:
    grades = [
        StudentGrades(
            student_name=_require_text(item, "student", "student_name", "studentName"),
            grade_m=parse_grade(_pick(item, "grade_m", "gradeM")),
            grade_1t=parse_grade(_pick(item, "grade_1t", "grade1T")),
            grade_thi=parse_grade(_pick(item, "grade_thi", "gradeThi")),
        )
        for item in payload.get("grades", [])
    ]
    return GradeSession(semester=parse_semester(_require_text(payload, "semester")), grades=grades)


def writes_from_payload(payload: Any) -> list[SemanticWrite]:
    if isinstance(payload, list):
        return [parse_write(_as_mapping(item, index), index) for index, item in enumerate(payload)]
    if not isinstance(payload, dict):
        raise WriteParseError("writes payload must be a JSON list or object")
    if "writes" in payload:
        return writes_from_payload(payload["writes"])
    writes: list[SemanticWrite] = []
    sessions = [
        *(("attendance", item) for item in _pick(payload, "attendance_sessions", "attendanceSessions", default=[])),
        *(("grades", item) for item in _pick(payload, "grade_sessions", "gradesSessions", default=[])),
    ]
    for index, (kind, item) in enumerate(sessions):
        try:
            session = parse_attendance_session(item) if kind == "attendance" else parse_grade_session(item)
        except (ValueError, AttributeError) as exc:
            raise WriteParseError(f"{kind} session: {exc}", index) from exc
        writes.extend(session.marks())
    return writes


def _as_mapping(item: Any, index: int) -> Mapping[str, Any]:
    if not isinstance(item, dict):
        raise WriteParseError("each write must be a JSON object", index)
    return item


def detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    encoding = result.get("encoding") or "utf-8"
    if encoding.lower() == "ascii":
        return "utf-8"
    return encoding


def decode_text(raw: bytes) -> str:
    """UTF-8 first; chardet's guess only for files that are not valid UTF-8."""
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode(detect_encoding(raw), errors="replace")


def writes_from_csv_bytes(raw: bytes) -> list[SemanticWrite]:
    text = decode_text(raw)
    try:
        df = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
    except Exception as exc:
        raise WriteParseError(f"Could not parse CSV writes: {exc}") from exc
    df.columns = [str(column).strip() for column in df.columns]
    return [parse_write(record, index) for index, record in enumerate(df.to_dict(orient="records"))]


def load_writes_bytes(raw: bytes, suffix: str) -> list[SemanticWrite]:
    suffix = suffix.lower()
    if suffix not in WRITE_FILE_SUFFIXES:
        raise WriteParseError(f"Unsupported writes file '{suffix or '[missing extension]'}'. Use .json or .csv")
    if suffix == ".csv":
        return writes_from_csv_bytes(raw)
    try:
        payload = json.loads(decode_text(raw))
    except (UnicodeDecodeError, ValueError) as exc:
        raise WriteParseError(f"Could not parse JSON writes: {exc}") from exc
    return writes_from_payload(payload)


def load_writes(path: Path) -> list[SemanticWrite]:
    if not path.exists():
        raise FileNotFoundError(f"Writes file not found: {path}")
    return load_writes_bytes(path.read_bytes(), path.suffix)


def writes_to_payload(writes: Iterable[SemanticWrite]) -> list[dict[str, Any]]:
    return [write.to_dict() for write in writes]
