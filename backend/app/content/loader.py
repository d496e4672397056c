"""Static content tables: YAML on disk, validated into frozen pydantic models, memoized.

Every table is read once per process through shared.cache; tests reset it with
reset_tables(). Malformed rows are skipped with a warning in lenient mode
(CARTHIEF_TABLES_LENIENT, default on) and raise TableLoadError in strict mode.
A missing or unparsable table file always raises.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from backend.app.core.error_handling import TableLoadError, log_error_with_context
from backend.app.models.events import EventDefinition
from backend.app.models.relationships import (
    BandEventConfig,
    RelationshipArcConfig,
    RelationshipTables,
)
from backend.app.models.safehouse import FacilityEffect, IncursionProfile, IncursionTables
from backend.app.models.storylines import StorylineStep
from shared import config as shared_config
from shared.cache import cached_table

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

MISSION_EVENTS_TABLE = "mission_events"
INCURSION_PROFILES_TABLE = "incursion_profiles"
FACILITY_EFFECTS_TABLE = "facility_effects"
RELATIONSHIP_EVENTS_TABLE = "relationship_events"
STORYLINES_TABLE = "storylines"


def _tables_dir() -> Path:
    return Path(shared_config.TABLES_DIR)


def _load_yaml(path: Path) -> Any:
    return yaml.safe_load(path.read_text(encoding="utf-8"))


def _read_table(table: str) -> dict[str, Any]:
    """Read `{table}.yaml` (or .yml) from the tables dir as a mapping."""
    base = _tables_dir()
    for ext in (".yaml", ".yml"):
        path = base / f"{table}{ext}"
        if not path.is_file():
            continue
        try:
            data = _load_yaml(path)
        except yaml.YAMLError as e:
            raise TableLoadError(table, f"invalid YAML in {path.name}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise TableLoadError(table, f"{path.name} must contain a mapping, got {type(data).__name__}")
        logger.debug("Read table %s from %s", table, path)
        return data
    raise TableLoadError(table, f"no {table}.yaml in {base}")


def _coerce_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


def _validate_row(table: str, model: type[M], row: Any, label: str) -> M | None:
    """Validate one row; lenient mode logs and returns None, strict mode raises."""
    try:
        return model.model_validate(row)
    except ValidationError as e:
        if not shared_config.TABLES_LENIENT_VALIDATION:
            raise TableLoadError(table, f"invalid row {label}: {e}") from e
        log_error_with_context(
            e,
            "load_table",
            table=table,
            extra_context={"row": label},
            level=logging.WARNING,
        )
        return None


def _validate_rows(table: str, model: type[M], rows: Iterable[Any]) -> list[M]:
    out: list[M] = []
    seen: set[str] = set()
    for index, row in enumerate(rows):
        row_id = row.get("id") if isinstance(row, dict) else None
        parsed = _validate_row(table, model, row, str(row_id or f"#{index}"))
        if parsed is None:
            continue
        key = getattr(parsed, "id", None) or getattr(parsed, "alert_id", None)
        if key and key in seen:
            logger.warning("Table %s: duplicate id %s, keeping the first row", table, key)
            continue
        if key:
            seen.add(key)
        out.append(parsed)
    return out


# --- Mission events ---


def _build_mission_events() -> tuple[EventDefinition, ...]:
    data = _read_table(MISSION_EVENTS_TABLE)
    events = _validate_rows(MISSION_EVENTS_TABLE, EventDefinition, _coerce_list(data.get("events")))
    logger.info("Loaded %d mission events", len(events))
    return tuple(events)


def load_mission_events() -> tuple[EventDefinition, ...]:
    """Base mission event table, in file order."""
    return cached_table(MISSION_EVENTS_TABLE, _build_mission_events)


# --- Safehouse incursion profiles ---


def _build_incursion_profiles() -> IncursionTables:
    data = _read_table(INCURSION_PROFILES_TABLE)
    facility = _validate_rows(
        INCURSION_PROFILES_TABLE, IncursionProfile, _coerce_list(data.get("facility_profiles"))
    )
    heat = _validate_rows(INCURSION_PROFILES_TABLE, IncursionProfile, _coerce_list(data.get("heat_profiles")))
    logger.info("Loaded %d facility and %d heat incursion profiles", len(facility), len(heat))
    return IncursionTables(facility_profiles=tuple(facility), heat_profiles=tuple(heat))


def load_incursion_profiles() -> IncursionTables:
    return cached_table(INCURSION_PROFILES_TABLE, _build_incursion_profiles)


# --- Facility effects ---


def _build_facility_effects() -> dict[str, FacilityEffect]:
    data = _read_table(FACILITY_EFFECTS_TABLE)
    raw = data.get("facilities") or {}
    if not isinstance(raw, dict):
        raise TableLoadError(FACILITY_EFFECTS_TABLE, "'facilities' must be a mapping of facility id to effect")
    effects: dict[str, FacilityEffect] = {}
    for facility_id, row in raw.items():
        parsed = _validate_row(FACILITY_EFFECTS_TABLE, FacilityEffect, row, str(facility_id))
        if parsed is not None:
            effects[str(facility_id).strip()] = parsed
    logger.info("Loaded %d facility effects", len(effects))
    return effects


def load_facility_effects() -> dict[str, FacilityEffect]:
    return cached_table(FACILITY_EFFECTS_TABLE, _build_facility_effects)


# --- Relationship events ---


def _build_relationship_tables() -> RelationshipTables:
    data = _read_table(RELATIONSHIP_EVENTS_TABLE)
    raw_bands = data.get("bands") or {}
    if not isinstance(raw_bands, dict):
        raise TableLoadError(RELATIONSHIP_EVENTS_TABLE, "'bands' must be a mapping of band to event config")
    bands: dict[str, BandEventConfig] = {}
    for band, row in raw_bands.items():
        parsed = _validate_row(RELATIONSHIP_EVENTS_TABLE, BandEventConfig, row, str(band))
        if parsed is not None:
            bands[str(band).strip().lower()] = parsed
    arcs = _validate_rows(RELATIONSHIP_EVENTS_TABLE, RelationshipArcConfig, _coerce_list(data.get("arcs")))
    logger.info("Loaded %d relationship bands and %d arcs", len(bands), len(arcs))
    return RelationshipTables(bands=bands, arcs=tuple(arcs))


def load_relationship_tables() -> RelationshipTables:
    return cached_table(RELATIONSHIP_EVENTS_TABLE, _build_relationship_tables)


# --- Crew storylines ---


def _build_storylines() -> dict[str, tuple[StorylineStep, ...]]:
    data = _read_table(STORYLINES_TABLE)
    raw = data.get("storylines") or {}
    if not isinstance(raw, dict):
        raise TableLoadError(STORYLINES_TABLE, "'storylines' must be a mapping of background id to steps")
    storylines: dict[str, tuple[StorylineStep, ...]] = {}
    for background_id, rows in raw.items():
        steps = _validate_rows(STORYLINES_TABLE, StorylineStep, _coerce_list(rows))
        storylines[str(background_id).strip().lower()] = tuple(steps)
    if "default" not in storylines:
        raise TableLoadError(STORYLINES_TABLE, "a 'default' storyline is required")
    logger.info("Loaded storylines for %d backgrounds", len(storylines))
    return storylines


def load_storylines() -> dict[str, tuple[StorylineStep, ...]]:
    return cached_table(STORYLINES_TABLE, _build_storylines)
