"""Safehouse incursion alerts triggered by installed facilities or the city heat tier.

Each trigger yields an alert plus a mission-style event (same id) that can be fed
into the mission event deck through build_mission_event_deck(extra_events=...).
"""
from __future__ import annotations

import logging
from typing import Any

from backend.app.content.loader import load_incursion_profiles
from backend.app.core.records import normalize_id, now_ms, prettify_id, read_field, to_finite
from backend.app.models.events import IncursionBatch, IncursionEvent, SafehouseIncursionAlert
from backend.app.models.safehouse import IncursionProfile
from backend.app.world.safehouse_effects import collect_safehouse_facility_ids, get_facility_effect_config

__all__ = [
    "build_safehouse_incursion_events",
    "collect_safehouse_facility_ids",
    "resolve_facility_name",
    "resolve_safehouse_label",
]

logger = logging.getLogger(__name__)

SAFEHOUSE_BADGE = {"type": "safehouse-alert", "icon": "🏠", "label": "Safehouse Alert"}
ALL_RISK_TIERS = ["low", "moderate", "high"]
ALL_CRACKDOWN_TIERS = ["calm", "alert", "lockdown"]


def resolve_facility_name(facility_id: str | None) -> str:
    config = get_facility_effect_config(facility_id)
    if config is not None and config.name:
        return config.name
    return prettify_id(facility_id) or "Safehouse Facility"


def resolve_safehouse_label(safehouse: Any) -> str:
    if not safehouse:
        return "Safehouse"
    name = read_field(safehouse, "name")
    location = read_field(safehouse, "location")
    name = name.strip() if isinstance(name, str) else ""
    location = location.strip() if isinstance(location, str) else ""
    if name and location:
        return f"{name} – {location}"
    if name:
        return name
    if location:
        return f"{location} Safehouse"
    return "Safehouse"


def _format(text: str, values: dict[str, str]) -> str:
    try:
        return text.format_map(values)
    except (KeyError, IndexError, ValueError) as e:
        logger.warning("Incursion template %r could not be formatted: %s", text, e)
        return text


def _format_tree(value: Any, values: dict[str, str]) -> Any:
    if isinstance(value, str):
        return _format(value, values)
    if isinstance(value, list):
        return [_format_tree(v, values) for v in value]
    if isinstance(value, dict):
        return {k: _format_tree(v, values) for k, v in value.items()}
    return value


def _build_pair(
    profile: IncursionProfile,
    safehouse: Any,
    triggered_at: int,
    facility_id: str | None = None,
    heat_tier: str | None = None,
) -> tuple[IncursionEvent, SafehouseIncursionAlert] | None:
    safehouse_label = resolve_safehouse_label(safehouse)
    facility_name = resolve_facility_name(facility_id) if facility_id else None
    values = {
        "facility_id": facility_id or "",
        "facility_name": facility_name or "Safehouse Facility",
        "safehouse_label": safehouse_label,
        "heat_tier": heat_tier or "",
    }

    choices = []
    for choice in profile.choices:
        data = _format_tree(choice.model_dump(), values)
        downtime = data["effects"].get("facility_downtime")
        if downtime is not None:
            downtime["facility_id"] = facility_id or downtime.get("facility_id")
        choices.append(data)
    if not choices:
        logger.warning("Incursion profile %s has no choices, skipping", profile.alert_id)
        return None

    if facility_name:
        badge = {"type": "facility", "icon": profile.badge_icon, "label": facility_name}
    else:
        badge = {"type": "heat-tier", "icon": profile.badge_icon, "label": (heat_tier or "alert").capitalize()}

    description = _format(profile.description, values) if profile.description else f"{profile.label} triggered at the safehouse."
    event = IncursionEvent.model_validate({
        "id": profile.alert_id,
        "label": profile.label,
        "description": description,
        "trigger_progress": profile.trigger_progress,
        "min_difficulty": profile.min_difficulty,
        "max_difficulty": profile.max_difficulty,
        "base_weight": profile.base_weight,
        "risk_tiers": ALL_RISK_TIERS,
        "crackdown_tiers": ALL_CRACKDOWN_TIERS,
        "choices": choices,
        "badges": [dict(SAFEHOUSE_BADGE), badge],
        "safehouse_alert_id": profile.alert_id,
        "safehouse_alert_cooldown_days": profile.cooldown_days,
        "facility_id": facility_id,
        "facility_name": facility_name,
        "heat_tier": heat_tier,
    })
    summary = (
        _format(profile.alert_summary, values)
        if profile.alert_summary
        else f"{profile.label} active around {safehouse_label}."
    )
    alert = SafehouseIncursionAlert(
        id=profile.alert_id,
        label=profile.label,
        summary=summary,
        status="alert",
        severity="critical" if heat_tier == "lockdown" else "warning",
        facility_id=facility_id,
        facility_name=facility_name,
        heat_tier=heat_tier,
        safehouse_id=normalize_id(read_field(safehouse, "id")),
        safehouse_label=safehouse_label,
        cooldown_days=profile.cooldown_days,
        triggered_at=triggered_at,
    )
    return event, alert


def build_safehouse_incursion_events(mission: Any, context: Any = None) -> IncursionBatch:
    """Alerts (and their paired events) for the safehouse backing a mission.

    Args:
        mission: The mission being staged. Difficulty bounds on the generated events are
            applied later, when they compete in the mission event deck.
        context: Dict or object with `safehouse`, `heat_tier` and optional `now` (epoch ms).

    Returns:
        IncursionBatch; both lists empty when nothing triggers.
    """
    safehouse = read_field(context, "safehouse")
    raw_tier = read_field(context, "heat_tier")
    heat_tier = raw_tier.strip().lower() if isinstance(raw_tier, str) and raw_tier.strip() else None
    triggered_at = int(to_finite(read_field(context, "now"), float(now_ms())))

    tables = load_incursion_profiles()
    profile_by_facility: dict[str, IncursionProfile] = {}
    for profile in tables.facility_profiles:
        for facility_id in profile.facility_ids:
            profile_by_facility.setdefault(facility_id.strip().lower(), profile)
    profile_by_heat: dict[str, IncursionProfile] = {}
    for profile in tables.heat_profiles:
        for tier in profile.heat_tiers:
            profile_by_heat.setdefault(tier.strip().lower(), profile)

    batch = IncursionBatch()
    used: set[str] = set()

    for facility_id in collect_safehouse_facility_ids(safehouse):
        normalized = facility_id.lower()
        profile = profile_by_facility.get(normalized)
        if profile is None or profile.alert_id in used:
            continue
        pair = _build_pair(profile, safehouse, triggered_at, facility_id=normalized)
        if pair is None:
            continue
        batch.events.append(pair[0])
        batch.alerts.append(pair[1])
        used.add(profile.alert_id)

    if heat_tier:
        profile = profile_by_heat.get(heat_tier)
        if profile is not None and profile.alert_id not in used:
            pair = _build_pair(profile, safehouse, triggered_at, heat_tier=heat_tier)
            if pair is not None:
                batch.events.append(pair[0])
                batch.alerts.append(pair[1])
                used.add(profile.alert_id)

    if batch.alerts:
        logger.info(
            "Safehouse incursions for mission %s: %s",
            read_field(mission, "id", default="?"),
            ", ".join(a.id for a in batch.alerts),
        )
    return batch
