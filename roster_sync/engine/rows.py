from __future__ import annotations

from typing import Optional

from openpyxl.worksheet.worksheet import Worksheet

from roster_sync.config import DEFAULT_CONFIG, ReconcileConfig
from roster_sync.engine.headers import cell_value
from roster_sync.engine.models import Found, Lookup, NotFound
from roster_sync.engine.normalize import cell_text, normalize_name


def name_parts(sheet: Worksheet, row: int, config: ReconcileConfig = DEFAULT_CONFIG) -> list[str]:
    return [cell_text(cell_value(sheet, row, col)) for col in config.name_columns]


def row_full_name(sheet: Worksheet, row: int, config: ReconcileConfig = DEFAULT_CONFIG) -> str:
    """Title, surname and given name joined by single spaces, e.g. "Maria Nguyen Thi An"."""
    return " ".join(part for part in name_parts(sheet, row, config) if part)


def row_candidates(sheet: Worksheet, row: int, config: ReconcileConfig) -> tuple[str, str] | None:
    """Normalized (full name, name without title) for a data row, or None when the row holds no name."""
    parts = name_parts(sheet, row, config)
    title, rest = parts[0], [part for part in parts[1:] if part]
    if len(parts) > 1 and not rest:
        return None
    full = normalize_name(" ".join(part for part in [title, *rest] if part))
    if not full:
        return None
    bare = normalize_name(" ".join(rest)) if rest else full
    return full, bare


def _exact_pass(sheet: Worksheet, rows: range, target: str, config: ReconcileConfig) -> Lookup:
    for row in rows:
        candidates = row_candidates(sheet, row, config)
        if candidates and target in candidates:
            return Found(row)
    return NotFound()


def _first_columns_pass(sheet: Worksheet, rows: range, target: str, config: ReconcileConfig) -> Lookup:
    width = min(config.fallback_scan_columns, sheet.max_column)
    for row in rows:
        for col in range(1, width + 1):
            if normalize_name(cell_text(cell_value(sheet, row, col))) == target:
                return Found(row)
    return NotFound()


def _containment_pass(sheet: Worksheet, rows: range, target: str, config: ReconcileConfig) -> Lookup:
    for row in rows:
        candidates = row_candidates(sheet, row, config)
        if not candidates:
            continue
        full = candidates[0]
        if target in full or full in target:
            return Found(row)
    return NotFound()


def find_student_row(
    sheet: Worksheet,
    header_row: int,
    display_name: str,
    *,
    scan_first_columns: bool = False,
    first_data_row: Optional[int] = None,
    config: ReconcileConfig = DEFAULT_CONFIG,
) -> Lookup:
    """
    Locate a student's data row below the header.

    Passes run over the whole sheet in order and the first hit wins:
    exact name, exact cell among the first columns (attendance sheets only),
    then substring containment in either direction.

    Scanning starts at `first_data_row`, or just below `header_row` when it is
    not given. Attendance callers pass the row below the type row.
    """
    target = normalize_name(display_name)
    if not target:
        return NotFound("empty student name")
    start = first_data_row if first_data_row is not None else header_row + 1
    rows = range(max(start, header_row + 1), sheet.max_row + 1)
    passes = [_exact_pass]
    if scan_first_columns:
        passes.append(_first_columns_pass)
    if config.fuzzy_row_match:
        passes.append(_containment_pass)
    for run in passes:
        found = run(sheet, rows, target, config)
        if found:
            return found
    return NotFound(f"student not found: {display_name}")
