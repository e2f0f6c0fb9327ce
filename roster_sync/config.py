"""Reconciliation settings passed explicitly into the engine entry points."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

from roster_sync.engine.models import AttendanceType, GradeComponent

CONFIG_ENV_VAR = "ROSTER_SYNC_CONFIG"
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}

ATTENDANCE_TYPE_LABELS = {
    AttendanceType.HOC_GIAO_LY: ("h", "hoc gl", "hgl", "hoc giao ly"),
    AttendanceType.LE_THU_5: ("le t5", "t5", "lt5", "le thu 5"),
    AttendanceType.LE_CHUA_NHAT: ("l", "le cn", "lcn", "chu nhat", "cn", "le chua nhat"),
}

GRADE_COMPONENT_LABELS = {
    GradeComponent.M: ("m", "mieng", "diem mieng"),
    GradeComponent.ONE_TEST: ("1t", "1 tiet", "diem 1 tiet", "diem 1t", "mot tiet"),
    GradeComponent.FINAL: ("thi", "diem thi", "cuoi ky", "cuoi ki", "ck"),
}

LEGACY_GRADE_COLUMNS = {
    GradeComponent.M: 7,
    GradeComponent.ONE_TEST: 8,
    GradeComponent.FINAL: 9,
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ReconcileConfig:
    header_scan_rows: int = 20
    min_date_cells: int = 3
    # title (baptismal name), surname, given name
    name_columns: tuple[int, ...] = (3, 4, 5)
    fallback_scan_columns: int = 6
    fuzzy_row_match: bool = True
    use_legacy_grade_columns: bool = False
    legacy_grade_columns: Mapping[GradeComponent, int] = field(default_factory=lambda: dict(LEGACY_GRADE_COLUMNS))
    attendance_type_labels: Mapping[AttendanceType, tuple[str, ...]] = field(
        default_factory=lambda: dict(ATTENDANCE_TYPE_LABELS)
    )
    grade_component_labels: Mapping[GradeComponent, tuple[str, ...]] = field(
        default_factory=lambda: dict(GRADE_COMPONENT_LABELS)
    )
    grade_min: float = 0.0
    grade_max: float = 10.0
    keep_vba: bool = False

    def __post_init__(self) -> None:
        if self.header_scan_rows < 1:
            raise ConfigError("header_scan_rows must be at least 1")
        if self.min_date_cells < 1:
            raise ConfigError("min_date_cells must be at least 1")
        if not self.name_columns or any(col < 1 for col in self.name_columns):
            raise ConfigError("name_columns must list 1-based column numbers")
        if self.grade_min > self.grade_max:
            raise ConfigError("grade_min must not exceed grade_max")

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["name_columns"] = list(self.name_columns)
        payload["legacy_grade_columns"] = {key.value: col for key, col in self.legacy_grade_columns.items()}
        payload["attendance_type_labels"] = {
            key.value: list(labels) for key, labels in self.attendance_type_labels.items()
        }
        payload["grade_component_labels"] = {
            key.value: list(labels) for key, labels in self.grade_component_labels.items()
        }
        return payload


DEFAULT_CONFIG = ReconcileConfig()


def _coerce_labels(raw: Any, parse, name: str) -> dict:
    if not isinstance(raw, dict):
        raise ConfigError(f"{name} must be an object")
    result = {}
    for key, labels in raw.items():
        try:
            member = parse(key)
        except ValueError as exc:
            raise ConfigError(f"{name}: {exc}") from exc
        if isinstance(labels, str) or not isinstance(labels, list):
            raise ConfigError(f"{name}.{key} must be a list of labels")
        result[member] = tuple(str(label) for label in labels)
    return result


def config_from_mapping(payload: Mapping[str, Any], base: ReconcileConfig = DEFAULT_CONFIG) -> ReconcileConfig:
    known = {item.name for item in fields(ReconcileConfig)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
    updates: dict[str, Any] = dict(payload)
    if "name_columns" in updates:
        updates["name_columns"] = tuple(int(col) for col in updates["name_columns"])
    if "attendance_type_labels" in updates:
        merged = dict(base.attendance_type_labels)
        merged.update(_coerce_labels(updates["attendance_type_labels"], AttendanceType.parse, "attendance_type_labels"))
        updates["attendance_type_labels"] = merged
    if "grade_component_labels" in updates:
        merged = dict(base.grade_component_labels)
        merged.update(_coerce_labels(updates["grade_component_labels"], GradeComponent.parse, "grade_component_labels"))
        updates["grade_component_labels"] = merged
    if "legacy_grade_columns" in updates:
        raw = updates["legacy_grade_columns"]
        if not isinstance(raw, dict):
            raise ConfigError("legacy_grade_columns must be an object")
        merged = dict(base.legacy_grade_columns)
        try:
            merged.update({GradeComponent.parse(key): int(col) for key, col in raw.items()})
        except ValueError as exc:
            raise ConfigError(f"legacy_grade_columns: {exc}") from exc
        updates["legacy_grade_columns"] = merged
    return replace(base, **updates)


def load_config(path: Path) -> ReconcileConfig:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML configs are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    return config_from_mapping(payload)


def resolve_config(explicit: str | None = None) -> ReconcileConfig:
    raw = explicit or os.environ.get(CONFIG_ENV_VAR)
    if not raw:
        return DEFAULT_CONFIG
    return load_config(Path(raw))


def starter_config_text() -> str:
    return json.dumps(DEFAULT_CONFIG.to_dict(), indent=2, ensure_ascii=False) + "\n"
