from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from roster_sync.config import DEFAULT_CONFIG, ReconcileConfig
from roster_sync.engine.headers import cell_value, type_row_for
from roster_sync.engine.models import AttendanceType, Found, GradeComponent, Lookup, NotFound
from roster_sync.engine.normalize import cell_text, contains_token, date_key, normalize_name, target_date_key


@dataclass(frozen=True)
class AttendanceColumn:
    column: int
    date: Optional[str]
    label: str
    inherited_date: bool

    @property
    def letter(self) -> str:
        return get_column_letter(self.column)

    def to_dict(self) -> dict[str, Any]:
        return {
            "column": self.column,
            "letter": self.letter,
            "date": self.date,
            "type": self.label,
            "inherited_date": self.inherited_date,
        }


def label_matches(label: str, variants: Iterable[str]) -> bool:
    """
    Normalized label membership test.

    Single-letter variants ("h", "l", "m") only match the whole label, longer
    variants also match as a whole token inside the label ("le cn (sang)").
    """
    if not label:
        return False
    for variant in variants:
        wanted = normalize_name(variant)
        if not wanted:
            continue
        if label == wanted:
            return True
        if len(wanted) >= 2 and contains_token(label, wanted):
            return True
    return False


def iter_date_columns(sheet: Worksheet, header_row: int):
    """Yield (column, own date key, carried date key, type label) left to right."""
    type_row = type_row_for(header_row)
    last_seen_date: Optional[str] = None
    for col in range(1, sheet.max_column + 1):
        own_date = date_key(cell_value(sheet, header_row, col))
        if own_date is not None:
            last_seen_date = own_date
        label = normalize_name(cell_text(cell_value(sheet, type_row, col)))
        yield col, own_date, last_seen_date, label


def find_attendance_column(
    sheet: Worksheet,
    header_row: int,
    target_date: Any,
    attendance_type: AttendanceType,
    config: ReconcileConfig = DEFAULT_CONFIG,
) -> Lookup:
    wanted_date = target_date_key(target_date)
    variants = config.attendance_type_labels.get(attendance_type, ())
    for col, own_date, carried_date, label in iter_date_columns(sheet, header_row):
        if not label_matches(label, variants):
            continue
        if own_date is not None:
            if own_date == wanted_date:
                return Found(col)
            continue
        # merged date headers only fill the left-most column of the group
        if carried_date == wanted_date:
            return Found(col)
    return NotFound(f"column not found for {wanted_date} - {attendance_type.value}")


def list_attendance_columns(sheet: Worksheet, header_row: int) -> list[AttendanceColumn]:
    columns = []
    type_row = type_row_for(header_row)
    for col, own_date, carried_date, label in iter_date_columns(sheet, header_row):
        if not label:
            continue
        raw_label = cell_text(cell_value(sheet, type_row, col))
        columns.append(
            AttendanceColumn(
                column=col,
                date=own_date or carried_date,
                label=raw_label,
                inherited_date=own_date is None and carried_date is not None,
            )
        )
    return columns


def find_labelled_column(sheet: Worksheet, header_row: int, variants: Iterable[str]) -> Lookup:
    """Exact label match wins at once; otherwise the shortest containing label."""
    wanted = [normalize_name(variant) for variant in variants]
    partial: list[tuple[int, int]] = []
    for col in range(1, sheet.max_column + 1):
        label = normalize_name(cell_text(cell_value(sheet, header_row, col)))
        if not label:
            continue
        if label in wanted:
            return Found(col)
        if any(len(item) >= 2 and contains_token(label, item) for item in wanted):
            partial.append((len(label), col))
    if partial:
        return Found(min(partial)[1])
    return NotFound("no header label among: " + ", ".join(wanted))


def find_grade_column(
    sheet: Worksheet,
    header_row: int,
    component: GradeComponent,
    config: ReconcileConfig = DEFAULT_CONFIG,
) -> Lookup:
    found = find_labelled_column(sheet, header_row, config.grade_component_labels.get(component, ()))
    if found:
        return found
    if config.use_legacy_grade_columns and component in config.legacy_grade_columns:
        return Found(config.legacy_grade_columns[component])
    return NotFound(f"column not found for {component.value}")
