from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd

from roster_sync import __version__ as TOOL_VERSION
from roster_sync.config import ConfigError, ReconcileConfig, resolve_config, starter_config_text
from roster_sync.contracts import build_contract, build_run_summary
from roster_sync.engine.models import SEMESTERS, parse_semester
from roster_sync.engine.reader import (
    WorkbookReadError,
    available_attendance_columns,
    check_attendance_column,
    grades_frame,
    read_all_grades,
    read_grades,
    read_roster,
)
from roster_sync.engine.report import export_attendance_summary, summary_file_name
from roster_sync.engine.writer import BatchResult, BatchState, WriteStatus, apply_writes
from roster_sync.inputs import WriteParseError, load_writes, parse_attendance_session

TOOL_NAME = "roster-sync"
WORKBOOK_FORMATS = {".xlsx", ".xlsm"}
OUTPUT_STAMP_ENV_VAR = "ROSTER_SYNC_OUTPUT_STAMP"
# statuses that mean "nothing to do", not "could not place the value"
BENIGN_STATUSES = {WriteStatus.WRITTEN, WriteStatus.SKIPPED_NO_VALUE}

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_WORKBOOK_FAILED = 2
EXIT_CHECK_FAILED = 5
EXIT_PARTIAL = 6


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class RosterSyncArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr, force=True)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV_VAR)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "roster-sync-output" / f"{input_path.stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, input_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(input_path)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def write_bytes(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def require_workbook(raw: str) -> Path:
    path = Path(raw)
    if not path.exists():
        raise CliError(f"File not found: {path}", EXIT_COMMAND_ERROR)
    suffix = path.suffix.lower()
    if suffix not in WORKBOOK_FORMATS:
        raise CliError(
            f"Unsupported file type '{suffix or '[missing extension]'}'. "
            f"Supported: {', '.join(sorted(WORKBOOK_FORMATS))}",
            EXIT_COMMAND_ERROR,
        )
    return path


def load_cli_config(args: argparse.Namespace) -> ReconcileConfig:
    try:
        return resolve_config(getattr(args, "config", None))
    except ConfigError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, WorkbookReadError):
        return EXIT_WORKBOOK_FAILED
    return EXIT_COMMAND_ERROR


def exit_code_for_batch(result: BatchResult) -> int:
    if result.state in {BatchState.LOAD_FAILED, BatchState.SERIALIZE_FAILED}:
        return EXIT_WORKBOOK_FAILED
    if any(outcome.status not in BENIGN_STATUSES for outcome in result.outcomes):
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def render_apply_text(result: BatchResult, output_path: Path | None) -> str:
    lines = [
        "roster-sync apply",
        f"State: {result.state.value}",
        f"Output: {output_path if output_path else '[not written]'}",
        f"Writes: {len(result.outcomes)}",
        f"Written: {result.written_count}",
    ]
    for status, count in sorted(result.status_counts().items()):
        if status != WriteStatus.WRITTEN.value:
            lines.append(f"{status}: {count}")
    if result.error:
        lines.append(f"Error: {result.error}")
    skipped = [o for o in result.outcomes if o.status not in BENIGN_STATUSES]
    if skipped:
        lines.append("Needs attention:")
        lines.extend(f"- {o.write.describe()}: {o.message}" for o in skipped)
    return "\n".join(lines) + "\n"


def build_apply_summary(
    result: BatchResult,
    *,
    input_path: Path,
    writes_path: Path,
    output_path: Path | None,
) -> dict[str, Any]:
    contract = build_contract("roster_sync.apply")
    warnings = [f"{o.write.describe()}: {o.message}" for o in result.outcomes if o.status not in BENIGN_STATUSES]
    payload = {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "writes_file": str(writes_path),
        **result.to_dict(),
    }
    payload["run_summary"] = build_run_summary(
        tool=TOOL_NAME,
        command="apply",
        input_path=input_path,
        status="ok" if result.ok else "failed",
        output_path=output_path,
        metrics={"written": result.written_count, "total": len(result.outcomes), **result.status_counts()},
        warnings=warnings,
    )
    return payload


def run_apply(args: argparse.Namespace) -> int:
    input_path = require_workbook(args.input)
    config = load_cli_config(args)
    writes_path = Path(args.writes)
    try:
        writes = load_writes(writes_path)
    except (WriteParseError, FileNotFoundError) as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc

    result = apply_writes(input_path.read_bytes(), writes, config)

    output_path: Path | None = None
    if not args.dry_run and result.state is BatchState.SERIALIZED:
        if args.in_place:
            output_path = input_path
        elif args.output:
            output_path = Path(args.output)
        else:
            output_path = determine_output_dir(args, input_path) / f"{input_path.stem}_reconciled{input_path.suffix}"
        write_bytes(output_path, result.buffer)

    summary = build_apply_summary(result, input_path=input_path, writes_path=writes_path, output_path=output_path)
    if args.json_summary:
        write_json(Path(args.json_summary), summary)
        emit_human(f"Summary written: {args.json_summary}", quiet=args.quiet)
    if args.json:
        maybe_emit_json_stdout(summary, True)
    else:
        emit_human(render_apply_text(result, output_path).rstrip(), quiet=args.quiet)
    return exit_code_for_batch(result)


def run_columns(args: argparse.Namespace) -> int:
    input_path = require_workbook(args.input)
    columns = available_attendance_columns(input_path, load_cli_config(args))
    contract = build_contract("roster_sync.columns")
    payload = {
        "contract": contract,
        "schema_version": contract["version"],
        "input": str(input_path),
        "columns": [column.to_dict() for column in columns],
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        lines = ["roster-sync columns", f"File: {input_path}", f"Attendance columns: {len(columns)}"]
        lines.extend(
            f"- {column.letter}: {column.date or '?'} {column.label}" + (" (date inherited)" if column.inherited_date else "")
            for column in columns
        )
        print("\n".join(lines))
    return EXIT_SUCCESS


def run_check(args: argparse.Namespace) -> int:
    input_path = require_workbook(args.input)
    check = check_attendance_column(input_path, args.date, args.type, load_cli_config(args))
    contract = build_contract("roster_sync.check")
    payload = {"contract": contract, "schema_version": contract["version"], "input": str(input_path), **check.to_dict()}
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        location = f" (sheet '{check.sheet}', column {check.column})" if check.valid else ""
        emit_human(f"{check.message}{location}", quiet=args.quiet)
    return EXIT_SUCCESS if check.valid else EXIT_CHECK_FAILED


def run_grades(args: argparse.Namespace) -> int:
    input_path = require_workbook(args.input)
    config = load_cli_config(args)
    if args.semester == "all":
        by_semester = read_all_grades(input_path, config)
    else:
        semester = parse_semester(args.semester)
        by_semester = {semester: read_grades(input_path, semester, config)}

    if args.csv:
        frames = []
        for semester, rows in by_semester.items():
            frame = grades_frame(rows)
            frame.insert(0, "semester", semester)
            frames.append(frame)
        csv_path = Path(args.csv)
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        combined = pd.concat(frames, ignore_index=True)
        combined.to_csv(csv_path, index=False)
        emit_human(f"Grades CSV written: {csv_path}", quiet=args.quiet)

    contract = build_contract("roster_sync.grades")
    payload = {
        "contract": contract,
        "schema_version": contract["version"],
        "input": str(input_path),
        "semesters": {
            semester: [
                {"student_name": r.student_name, "M": r.grade_m, "1T": r.grade_1t, "Thi": r.grade_thi} for r in rows
            ]
            for semester, rows in by_semester.items()
        },
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        lines = ["roster-sync grades", f"File: {input_path}"]
        lines.extend(f"{semester}: {len(rows)} students with grades" for semester, rows in by_semester.items())
        emit_human("\n".join(lines), quiet=args.quiet)
    return EXIT_SUCCESS


def run_roster(args: argparse.Namespace) -> int:
    input_path = require_workbook(args.input)
    entries = read_roster(input_path, load_cli_config(args))
    contract = build_contract("roster_sync.roster")
    payload = {
        "contract": contract,
        "schema_version": contract["version"],
        "input": str(input_path),
        "students": [entry.to_dict() for entry in entries],
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print("\n".join(f"{e.stt:>3} {e.baptismal_name} {e.full_name} {e.date_of_birth}".rstrip() for e in entries))
    return EXIT_SUCCESS


def run_export(args: argparse.Namespace) -> int:
    sessions_path = Path(args.sessions)
    if not sessions_path.exists():
        raise CliError(f"File not found: {sessions_path}", EXIT_COMMAND_ERROR)
    try:
        payload = json.loads(sessions_path.read_text(encoding="utf-8"))
        raw_sessions = payload.get("attendance_sessions", payload.get("attendanceSessions", [])) if isinstance(payload, dict) else payload
        sessions = [parse_attendance_session(item) for item in raw_sessions]
    except (ValueError, AttributeError) as exc:
        raise CliError(f"Could not read sessions: {exc}", EXIT_COMMAND_ERROR) from exc

    if args.roster:
        entries = read_roster(require_workbook(args.roster), load_cli_config(args))
        students = [" ".join(part for part in (e.baptismal_name, e.full_name) if part) for e in entries]
    else:
        students = []
        for session in sessions:
            for record in session.records:
                if record.student_name not in students:
                    students.append(record.student_name)

    output_path = Path(args.output) if args.output else Path.cwd() / summary_file_name(args.class_name)
    write_bytes(output_path, export_attendance_summary(args.class_name, students, sessions))
    emit_human(f"Attendance summary written: {output_path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_text(config_path, starter_config_text())
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = RosterSyncArgumentParser(prog=TOOL_NAME, description="Reconcile attendance and grades into a master roster workbook.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    apply = subparsers.add_parser("apply", help="Write attendance marks and grades into the master workbook.")
    apply.add_argument("input", help="Master workbook (.xlsx/.xlsm)")
    apply.add_argument("--writes", required=True, help="Writes file (.json or .csv)")
    apply.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    apply.add_argument("--output", help="Explicit output workbook path")
    apply.add_argument("--in-place", action="store_true", help="Overwrite the input workbook")
    apply.add_argument("--dry-run", action="store_true", help="Resolve every write without saving a workbook")
    apply.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    apply.add_argument("--json-summary", dest="json_summary", help="Explicit JSON summary output path")
    apply.add_argument("--config", help="JSON config path (default: $ROSTER_SYNC_CONFIG)")
    apply.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    apply.add_argument("-v", "--verbose", action="store_true", help="Log every resolved cell")

    columns = subparsers.add_parser("columns", help="List the attendance columns of the master workbook.")
    columns.add_argument("input", help="Master workbook (.xlsx/.xlsm)")
    columns.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    columns.add_argument("--config", help="JSON config path")

    check = subparsers.add_parser("check", help="Check that a date / attendance type column exists.")
    check.add_argument("input", help="Master workbook (.xlsx/.xlsm)")
    check.add_argument("--date", required=True, help="Attendance date (YYYY-MM-DD or dd/mm)")
    check.add_argument("--type", required=True, help="Attendance type, e.g. 'Hoc Giao Ly'")
    check.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    check.add_argument("--config", help="JSON config path")
    check.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    grades = subparsers.add_parser("grades", help="Read M / 1T / Thi grades back from the workbook.")
    grades.add_argument("input", help="Master workbook (.xlsx/.xlsm)")
    grades.add_argument("--semester", choices=[*SEMESTERS, "all"], default="all", help="Semester sheet to read")
    grades.add_argument("--csv", help="Also write the grades to this CSV path")
    grades.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    grades.add_argument("--config", help="JSON config path")
    grades.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    roster = subparsers.add_parser("roster", help="List the students of the roster sheet.")
    roster.add_argument("input", help="Roster workbook (.xlsx/.xlsm)")
    roster.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    roster.add_argument("--config", help="JSON config path")

    export = subparsers.add_parser("export", help="Build a fresh attendance summary workbook.")
    export.add_argument("--class-name", required=True, help="Class name used in titles and the file name")
    export.add_argument("--sessions", required=True, help="JSON file with attendance sessions")
    export.add_argument("--roster", help="Roster workbook supplying the student order")
    export.add_argument("--output", help="Explicit output workbook path")
    export.add_argument("--config", help="JSON config path")
    export.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="roster-sync.json", help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


COMMANDS = {
    "apply": run_apply,
    "columns": run_columns,
    "check": run_check,
    "grades": run_grades,
    "roster": run_roster,
    "export": run_export,
}


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        handler = COMMANDS.get(args.command)
        if handler is None:
            raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
        return handler(args)
    except CliError as exc:
        eprint(str(exc))
        return exc.code
    except (WorkbookReadError, ValueError, FileNotFoundError) as exc:
        eprint(str(exc))
        return classify_exception(exc)


if __name__ == "__main__":
    raise SystemExit(main())
