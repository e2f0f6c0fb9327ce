from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from roster_sync.engine.normalize import normalize_name, target_date_key


class AttendanceType(str, Enum):
    HOC_GIAO_LY = "Hoc Giao Ly"
    LE_THU_5 = "Le Thu 5"
    LE_CHUA_NHAT = "Le Chua Nhat"

    @classmethod
    def parse(cls, raw: Any) -> "AttendanceType":
        if isinstance(raw, cls):
            return raw
        key = normalize_name(raw).replace("_", " ")
        for member in cls:
            if key in {normalize_name(member.value), member.name.lower().replace("_", " ")}:
                return member
        raise ValueError(f"Unknown attendance type: {raw!r}")


class GradeComponent(str, Enum):
    M = "M"
    ONE_TEST = "1T"
    FINAL = "Thi"

    @classmethod
    def parse(cls, raw: Any) -> "GradeComponent":
        if isinstance(raw, cls):
            return raw
        key = normalize_name(raw).replace("_", " ")
        for member, aliases in GRADE_COMPONENT_ALIASES.items():
            if key in aliases:
                return member
        raise ValueError(f"Unknown grade component: {raw!r}")


GRADE_COMPONENT_ALIASES = {
    GradeComponent.M: {"m", "mieng", "grade m", "gradem"},
    GradeComponent.ONE_TEST: {"1t", "1 tiet", "one test", "onetest", "grade 1t", "grade1t"},
    GradeComponent.FINAL: {"thi", "final", "cuoi ky", "grade thi", "gradethi"},
}

SEMESTERS = ("HK1", "HK2")


def parse_semester(raw: Any) -> str:
    value = normalize_name(raw).replace(" ", "").upper()
    if value in {"1", "2"}:
        value = "HK" + value
    if value not in SEMESTERS:
        raise ValueError(f"Semester must be HK1 or HK2, got {raw!r}")
    return value


class TopicKind(str, Enum):
    ATTENDANCE = "attendance"
    GRADES = "grades"


@dataclass(frozen=True)
class Topic:
    kind: TopicKind
    semester: Optional[str] = None

    @classmethod
    def attendance(cls) -> "Topic":
        return cls(TopicKind.ATTENDANCE)

    @classmethod
    def grades(cls, semester: str) -> "Topic":
        return cls(TopicKind.GRADES, parse_semester(semester))

    def describe(self) -> str:
        if self.kind is TopicKind.ATTENDANCE:
            return "attendance"
        return f"grades {self.semester}"


@dataclass(frozen=True)
class Found:
    index: int

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class NotFound:
    reason: str = ""

    def __bool__(self) -> bool:
        return False


Lookup = Union[Found, NotFound]


@dataclass(frozen=True)
class AttendanceMark:
    student_name: str
    date: str
    attendance_type: AttendanceType
    is_present: bool

    def __post_init__(self) -> None:
        object.__setattr__(self, "attendance_type", AttendanceType.parse(self.attendance_type))

    @property
    def topic(self) -> Topic:
        return Topic.attendance()

    @property
    def date_key(self) -> str:
        return target_date_key(self.date)

    def describe(self) -> str:
        state = "present" if self.is_present else "absent"
        return f"{self.student_name} {state} on {self.date} ({self.attendance_type.value})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "attendance",
            "student": self.student_name,
            "date": self.date,
            "type": self.attendance_type.value,
            "present": self.is_present,
        }


@dataclass(frozen=True)
class GradeMark:
    student_name: str
    semester: str
    component: GradeComponent
    value: Optional[float]

    def __post_init__(self) -> None:
        object.__setattr__(self, "component", GradeComponent.parse(self.component))

    @property
    def topic(self) -> Topic:
        return Topic.grades(self.semester)

    def describe(self) -> str:
        return f"{self.student_name} {self.component.value}={self.value} in {self.semester}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "grade",
            "student": self.student_name,
            "semester": self.semester,
            "component": self.component.value,
            "value": self.value,
        }


SemanticWrite = Union[AttendanceMark, GradeMark]


def grade_in_range(value: Any, low: float = 0.0, high: float = 10.0) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if not math.isfinite(value):
        return False
    return low <= value <= high


@dataclass
class AttendanceRecord:
    student_name: str
    is_present: bool


@dataclass
class AttendanceSession:
    date: str
    attendance_type: AttendanceType
    records: list[AttendanceRecord] = field(default_factory=list)

    def marks(self) -> list[AttendanceMark]:
        return [
            AttendanceMark(record.student_name, self.date, self.attendance_type, record.is_present)
            for record in self.records
        ]


@dataclass
class StudentGrades:
    student_name: str
    grade_m: Optional[float] = None
    grade_1t: Optional[float] = None
    grade_thi: Optional[float] = None

    def by_component(self) -> dict[GradeComponent, Optional[float]]:
        return {
            GradeComponent.M: self.grade_m,
            GradeComponent.ONE_TEST: self.grade_1t,
            GradeComponent.FINAL: self.grade_thi,
        }


@dataclass
class GradeSession:
    semester: str
    grades: list[StudentGrades] = field(default_factory=list)

    def marks(self) -> list[GradeMark]:
        semester = parse_semester(self.semester)
        return [
            GradeMark(entry.student_name, semester, component, value)
            for entry in self.grades
            for component, value in entry.by_component().items()
        ]
