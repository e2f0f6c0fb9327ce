"""Apply semantic attendance / grade writes to a master workbook buffer."""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from typing import Any, Iterable, Optional, Sequence

from openpyxl import load_workbook
from openpyxl.cell.cell import MergedCell
from openpyxl.utils import get_column_letter
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from roster_sync.config import DEFAULT_CONFIG, ReconcileConfig
from roster_sync.engine.columns import find_attendance_column, find_grade_column
from roster_sync.engine.headers import find_header_row, type_row_for
from roster_sync.engine.models import (
    AttendanceMark,
    AttendanceSession,
    GradeMark,
    GradeSession,
    Lookup,
    SemanticWrite,
    Topic,
    TopicKind,
    grade_in_range,
)
from roster_sync.engine.rows import find_student_row
from roster_sync.engine.sheets import find_sheet

logger = logging.getLogger(__name__)

PRESENT_VALUE = 1
VBA_PROJECT_PART = "xl/vbaProject.bin"


class WriteStatus(str, Enum):
    WRITTEN = "Written"
    SKIPPED_SHEET_NOT_FOUND = "SkippedSheetNotFound"
    SKIPPED_HEADER_NOT_FOUND = "SkippedHeaderNotFound"
    SKIPPED_COLUMN_NOT_FOUND = "SkippedColumnNotFound"
    SKIPPED_ROW_NOT_FOUND = "SkippedRowNotFound"
    SKIPPED_NO_VALUE = "SkippedNoValue"
    SKIPPED_INVALID_VALUE = "SkippedInvalidValue"
    SKIPPED_MERGED_CELL = "SkippedMergedCell"


class BatchState(str, Enum):
    UNCHANGED = "Unchanged"
    SERIALIZED = "Serialized"
    LOAD_FAILED = "LoadFailed"
    SERIALIZE_FAILED = "SerializeFailed"


@dataclass(frozen=True)
class Location:
    sheet: str
    row: int
    column: int

    @property
    def cell(self) -> str:
        return f"{get_column_letter(self.column)}{self.row}"

    def to_dict(self) -> dict[str, Any]:
        return {"sheet": self.sheet, "row": self.row, "column": self.column, "cell": self.cell}


@dataclass(frozen=True)
class WriteOutcome:
    write: SemanticWrite
    status: WriteStatus
    location: Optional[Location] = None
    message: str = ""

    @property
    def written(self) -> bool:
        return self.status is WriteStatus.WRITTEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "write": self.write.to_dict(),
            "status": self.status.value,
            "location": self.location.to_dict() if self.location else None,
            "message": self.message,
        }


@dataclass
class BatchResult:
    buffer: bytes
    outcomes: list[WriteOutcome] = field(default_factory=list)
    state: BatchState = BatchState.UNCHANGED
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def written_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.written)

    def status_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for outcome in self.outcomes:
            counts[outcome.status.value] = counts.get(outcome.status.value, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "error": self.error,
            "written": self.written_count,
            "total": len(self.outcomes),
            "status_counts": self.status_counts(),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


def has_vba_project(buffer: bytes) -> bool:
    """True when the package carries a macro project (an .xlsm saved by Excel)."""
    try:
        with zipfile.ZipFile(BytesIO(buffer)) as archive:
            return VBA_PROJECT_PART in archive.namelist()
    except zipfile.BadZipFile:
        return False


def load_workbook_bytes(buffer: bytes, config: ReconcileConfig = DEFAULT_CONFIG, *, data_only: bool = False) -> Workbook:
    # macros and the macro-enabled content type only survive a save with keep_vba
    keep_vba = config.keep_vba or has_vba_project(buffer)
    return load_workbook(BytesIO(buffer), data_only=data_only, keep_vba=keep_vba)


def serialize_workbook(workbook: Workbook) -> bytes:
    out = BytesIO()
    workbook.save(out)
    return out.getvalue()


def mark_for_recalculation(workbook: Workbook) -> None:
    """Ask Excel to recompute every formula when the file is next opened."""
    workbook.calculation.fullCalcOnLoad = True


class _BatchContext:
    """Per-batch lookup caches so repeated writes to one sheet resolve once."""

    def __init__(self, workbook: Workbook, config: ReconcileConfig) -> None:
        self.workbook = workbook
        self.config = config
        self._sheets: dict[Topic, Optional[Worksheet]] = {}
        self._headers: dict[tuple[str, TopicKind], Lookup] = {}
        self._columns: dict[tuple[str, Any], Lookup] = {}

    def sheet(self, topic: Topic) -> Optional[Worksheet]:
        if topic not in self._sheets:
            self._sheets[topic] = find_sheet(self.workbook, topic)
        return self._sheets[topic]

    def header(self, sheet: Worksheet, kind: TopicKind) -> Lookup:
        key = (sheet.title, kind)
        if key not in self._headers:
            self._headers[key] = find_header_row(sheet, kind, self.config)
        return self._headers[key]

    def column(self, sheet: Worksheet, header_row: int, write: SemanticWrite) -> Lookup:
        if isinstance(write, AttendanceMark):
            key = (sheet.title, (write.date_key, write.attendance_type))
            if key not in self._columns:
                self._columns[key] = find_attendance_column(
                    sheet, header_row, write.date, write.attendance_type, self.config
                )
        else:
            key = (sheet.title, write.component)
            if key not in self._columns:
                self._columns[key] = find_grade_column(sheet, header_row, write.component, self.config)
        return self._columns[key]


def value_to_write(write: SemanticWrite, config: ReconcileConfig) -> tuple[Optional[Any], Optional[WriteStatus], str]:
    if isinstance(write, AttendanceMark):
        if write.is_present:
            return PRESENT_VALUE, None, ""
        # absent marks never overwrite what a catechist typed by hand
        return None, WriteStatus.SKIPPED_NO_VALUE, "absent: cell left untouched"
    if write.value is None:
        return None, WriteStatus.SKIPPED_NO_VALUE, "no grade: cell left untouched"
    if not grade_in_range(write.value, config.grade_min, config.grade_max):
        return None, WriteStatus.SKIPPED_INVALID_VALUE, (
            f"grade {write.value!r} outside [{config.grade_min:g}, {config.grade_max:g}]"
        )
    return write.value, None, ""


def apply_one(context: _BatchContext, write: SemanticWrite) -> WriteOutcome:
    try:
        topic = write.topic
    except ValueError as exc:
        return WriteOutcome(write, WriteStatus.SKIPPED_SHEET_NOT_FOUND, message=str(exc))
    sheet = context.sheet(topic)
    if sheet is None:
        return WriteOutcome(write, WriteStatus.SKIPPED_SHEET_NOT_FOUND, message=f"sheet not found for {topic.describe()}")

    header = context.header(sheet, topic.kind)
    if not header:
        return WriteOutcome(write, WriteStatus.SKIPPED_HEADER_NOT_FOUND, message=header.reason)

    try:
        column = context.column(sheet, header.index, write)
    except ValueError as exc:
        return WriteOutcome(write, WriteStatus.SKIPPED_COLUMN_NOT_FOUND, message=str(exc))
    if not column:
        return WriteOutcome(write, WriteStatus.SKIPPED_COLUMN_NOT_FOUND, message=column.reason)

    is_attendance = topic.kind is TopicKind.ATTENDANCE
    row = find_student_row(
        sheet,
        header.index,
        write.student_name,
        scan_first_columns=is_attendance,
        first_data_row=type_row_for(header.index) + 1 if is_attendance else None,
        config=context.config,
    )
    if not row:
        return WriteOutcome(write, WriteStatus.SKIPPED_ROW_NOT_FOUND, message=row.reason)

    location = Location(sheet.title, row.index, column.index)
    value, skip_status, reason = value_to_write(write, context.config)
    if skip_status is not None:
        return WriteOutcome(write, skip_status, location, reason)

    cell = sheet.cell(row=row.index, column=column.index)
    if isinstance(cell, MergedCell):
        return WriteOutcome(write, WriteStatus.SKIPPED_MERGED_CELL, location, f"{location.cell} is inside a merged range")
    cell.value = value
    return WriteOutcome(write, WriteStatus.WRITTEN, location, f"wrote {value!r} for {write.describe()}")


def log_outcome(outcome: WriteOutcome) -> None:
    if outcome.written:
        loc = outcome.location
        logger.info("Write result: sheet=%r row=%d column=%d (%s) %s", loc.sheet, loc.row, loc.column, loc.cell, outcome.message)
    elif outcome.status is WriteStatus.SKIPPED_NO_VALUE:
        logger.debug("Skipped %s: %s", outcome.write.describe(), outcome.message)
    else:
        logger.warning("%s for %s: %s", outcome.status.value, outcome.write.describe(), outcome.message)


def apply_writes(
    buffer: bytes,
    writes: Sequence[SemanticWrite],
    config: Optional[ReconcileConfig] = None,
) -> BatchResult:
    """
    Load `buffer`, apply every write in order, flag the workbook for
    recalculation and serialize it back.

    Resolution misses only skip the write concerned. If the workbook cannot be
    loaded or saved the original buffer comes back untouched with `error` set.
    """
    config = config or DEFAULT_CONFIG
    original = bytes(buffer)
    if not writes:
        return BatchResult(buffer=original)

    try:
        workbook = load_workbook_bytes(original, config)
    except Exception as exc:
        logger.exception("Could not load workbook for reconciliation")
        return BatchResult(buffer=original, state=BatchState.LOAD_FAILED, error=f"Could not read workbook: {exc}")

    context = _BatchContext(workbook, config)
    outcomes = []
    for write in writes:
        outcome = apply_one(context, write)
        log_outcome(outcome)
        outcomes.append(outcome)

    mark_for_recalculation(workbook)
    written = sum(1 for outcome in outcomes if outcome.written)
    logger.info("Merged %d of %d writes into workbook", written, len(outcomes))

    try:
        new_buffer = serialize_workbook(workbook)
    except Exception as exc:
        logger.exception("Could not serialize reconciled workbook")
        return BatchResult(
            buffer=original,
            outcomes=outcomes,
            state=BatchState.SERIALIZE_FAILED,
            error=f"Could not write workbook: {exc}",
        )
    return BatchResult(buffer=new_buffer, outcomes=outcomes, state=BatchState.SERIALIZED)


def expand_sessions(sessions: Iterable[AttendanceSession | GradeSession]) -> list[SemanticWrite]:
    writes: list[SemanticWrite] = []
    for session in sessions:
        writes.extend(session.marks())
    return writes


def merge_attendance(
    buffer: bytes,
    sessions: Sequence[AttendanceSession],
    config: Optional[ReconcileConfig] = None,
) -> BatchResult:
    """Write several dated attendance sessions into the master file in one pass."""
    return apply_writes(buffer, expand_sessions(sessions), config)


def merge_grades(
    buffer: bytes,
    sessions: Sequence[GradeSession],
    config: Optional[ReconcileConfig] = None,
) -> BatchResult:
    """Write per-semester grade sets (M, 1T, Thi per student) in one pass."""
    return apply_writes(buffer, expand_sessions(sessions), config)
