"""Safehouse facility bonuses and incursion downtime bookkeeping.

Downtime lives in the game state under `facility_downtimes`:
{safehouse_id: {facility_id: DowntimeRecord dict}}. A facility with a live
downtime entry contributes no passive bonus until its end day is reached.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Iterable

from backend.app.content.loader import load_facility_effects
from backend.app.core.records import get_hook, normalize_id, read_field, to_finite
from backend.app.models.events import FacilityDowntime
from backend.app.models.safehouse import DowntimeRecord, FacilityBonuses, FacilityEffect

logger = logging.getLogger(__name__)

DOWNTIME_STATE_KEY = "facility_downtimes"


def _facility_id(entry: Any) -> str | None:
    if isinstance(entry, str):
        return normalize_id(entry)
    return normalize_id(read_field(entry, "id"))


def _collect(safehouse: Any, hook_name: str, field_name: str) -> list[Any]:
    hook = get_hook(safehouse, hook_name)
    items = hook() if hook is not None else read_field(safehouse, field_name)
    if items is None or isinstance(items, (str, bytes, Mapping)):
        return []
    try:
        return list(items)
    except TypeError:
        logger.warning("Safehouse %s is not iterable (%s)", field_name, type(items).__name__)
        return []


def collect_safehouse_facility_ids(safehouse: Any) -> list[str]:
    """Unlocked amenity ids then active project ids, trimmed and de-duplicated in order.

    Uses get_unlocked_amenities()/get_active_projects() when the record has them,
    else the unlocked_amenities/active_projects fields. Entries may be ids or
    facility records with an `id`.
    """
    if not safehouse:
        return []
    seen: list[str] = []
    entries = _collect(safehouse, "get_unlocked_amenities", "unlocked_amenities")
    entries += _collect(safehouse, "get_active_projects", "active_projects")
    for entry in entries:
        facility_id = _facility_id(entry)
        if facility_id and facility_id not in seen:
            seen.append(facility_id)
    return seen


def get_facility_effect_config(facility_id: str | None) -> FacilityEffect | None:
    if not facility_id:
        return None
    return load_facility_effects().get(str(facility_id).strip())


def _ensure_downtime_state(state: Any) -> dict[str, dict[str, dict]] | None:
    if not isinstance(state, dict):
        return None
    container = state.get(DOWNTIME_STATE_KEY)
    if not isinstance(container, dict):
        if container is not None:
            logger.warning("Resetting malformed %s (%s)", DOWNTIME_STATE_KEY, type(container).__name__)
        container = {}
        state[DOWNTIME_STATE_KEY] = container
    for safehouse_id in list(container):
        if not isinstance(container[safehouse_id], dict):
            logger.warning("Dropping malformed downtime block for safehouse %s", safehouse_id)
            del container[safehouse_id]
    return container


def apply_facility_downtime(
    state: Any,
    safehouse_id: str | None,
    downtime: FacilityDowntime | Mapping[str, Any] | None,
    current_day: int,
    alert_id: str | None = None,
) -> DowntimeRecord | None:
    """Take a facility offline for downtime.duration_days from current_day.

    A second downtime on the same facility replaces the first.
    """
    container = _ensure_downtime_state(state)
    if container is None or downtime is None:
        return None
    if isinstance(downtime, Mapping):
        downtime = FacilityDowntime.model_validate(dict(downtime))
    facility_id = normalize_id(downtime.facility_id)
    if not facility_id:
        return None

    day = int(to_finite(current_day, 0.0))
    record = DowntimeRecord(
        facility_id=facility_id,
        alert_id=normalize_id(alert_id),
        summary=downtime.summary or None,
        penalties=list(downtime.penalties),
        duration_days=downtime.duration_days,
        started_on_day=day,
        ends_on_day=day + downtime.duration_days,
    )
    key = normalize_id(safehouse_id) or "default"
    container.setdefault(key, {})[facility_id] = record.model_dump()
    logger.info(
        "Facility %s at %s offline until day %d", facility_id, key, record.ends_on_day
    )
    return record


def _ends_on(entry: Any) -> float | None:
    if not isinstance(entry, dict):
        return None
    value = entry.get("ends_on_day")
    if value is None:
        return None
    return to_finite(value, 0.0)


def prune_facility_downtimes(state: Any, current_day: int) -> list[str]:
    """Drop downtime entries whose end day has been reached; returns the revived facility ids."""
    container = _ensure_downtime_state(state)
    if container is None:
        return []
    day = to_finite(current_day, 0.0)
    revived: list[str] = []
    for entries in container.values():
        for facility_id in list(entries):
            ends = _ends_on(entries[facility_id])
            if ends is not None and day >= ends:
                del entries[facility_id]
                revived.append(facility_id)
    if revived:
        logger.info("Facilities back online: %s", ", ".join(revived))
    return revived


def get_disabled_facility_ids(state: Any, safehouse_id: str | None, current_day: int | None = None) -> list[str]:
    container = _ensure_downtime_state(state)
    if container is None:
        return []
    if current_day is not None:
        prune_facility_downtimes(state, current_day)
    key = normalize_id(safehouse_id) or "default"
    return list(container.get(key, {}).keys())


def compute_safehouse_facility_bonuses(
    safehouse: Any,
    disabled_facility_ids: Iterable[str] = (),
) -> FacilityBonuses:
    """Sum passive bonuses of the safehouse's live facilities, skipping disabled ones."""
    disabled = {str(f).strip() for f in disabled_facility_ids or () if f}
    totals = FacilityBonuses()
    effects = load_facility_effects()
    for facility_id in collect_safehouse_facility_ids(safehouse):
        if facility_id in disabled:
            totals.disabled_facility_ids.append(facility_id)
            continue
        totals.active_facility_ids.append(facility_id)
        config = effects.get(facility_id)
        if config is None:
            continue
        totals.passive_income_bonus += config.passive_income_bonus
        totals.overhead_modifier_bonus += config.overhead_modifier_bonus
        totals.daily_heat_reduction_bonus += config.daily_heat_reduction_bonus
        totals.crew_rest_bonus += config.crew_rest_bonus
    return totals
