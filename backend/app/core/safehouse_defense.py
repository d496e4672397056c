"""Safehouse defense: zone layouts, escalation tracks, and the per-alert scenario lifecycle.

Lifecycle per alert id: (none) -> active -> cooldown. Scenarios and layouts are
kept as JSON-shaped dicts under state["safehouse_defense"]; callers get frozen
DefenseScenario snapshots back.
"""
from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any, Callable, Iterable

from pydantic import BaseModel, ValidationError

from backend.app.constants import (
    DEFENSE_COOLDOWN_DAYS_MAX,
    DEFENSE_GLOBAL_HISTORY_CAP,
    DEFENSE_RECOMMENDED_ACTIONS_CAP,
    DEFENSE_SCENARIO_HISTORY_CAP,
    ESCALATION_BASE_PRESSURE,
    ESCALATION_TRACK_DEFAULT_MAX,
    FALLBACK_ZONE_ID,
    HEAT_TIER_ESCALATION,
    UNASSIGNED_ZONE_ID,
    ZONE_ORDINAL_MAX,
    ZONE_ORDINAL_MIN,
    ZONE_SCORE_MAX,
    ZONE_SCORE_MIN,
)
from backend.app.core.error_handling import log_error_with_context
from backend.app.core.records import clamp, normalize_id, now_ms, read_field
from backend.app.models.defense import DefenseScenario, EscalationTrack, Layout, RecommendedAction
from backend.app.world.safehouse_effects import collect_safehouse_facility_ids

logger = logging.getLogger(__name__)

DEFENSE_STATE_KEY = "safehouse_defense"

ZONE_LABELS: dict[str, str] = {
    "operations": "Operations Deck",
    "logistics": "Logistics Wing",
    "security": "Security Core",
    "support": "Support Lanes",
}

# Substring heuristics, checked in this order
ZONE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("operations", ("ops", "command", "terminal", "theater")),
    ("logistics", ("dead-drop", "courier", "network", "logistics")),
    ("security", ("rapid-response", "security", "armory", "vault")),
)

DEFAULT_TRACKS: tuple[tuple[str, str], ...] = (
    ("perimeter-pressure", "Perimeter Pressure"),
    ("systems-integrity", "Systems Integrity"),
)


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def _number(value: Any) -> float | None:
    """Finite int/float only; strings and bools are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value or value in (float("inf"), float("-inf")):
        return None
    return float(value)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _id_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [t for t in (_text(v) for v in value) if t]


def classify_facility_zone(facility_id: str) -> str:
    """Keyword zone for a facility id with no saved placement."""
    lowered = facility_id.strip().lower()
    if not lowered:
        return FALLBACK_ZONE_ID
    for zone_id, keywords in ZONE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return zone_id
    return FALLBACK_ZONE_ID


def _saved_assignments(saved: dict[str, Any]) -> dict[str, str]:
    """facility id -> zone id from a saved layout.

    Priority: assignments_by_facility, then zones[].facility_ids, then unassigned_facility_ids.
    """
    assignments: dict[str, str] = {}
    explicit = saved.get("assignments_by_facility")
    if isinstance(explicit, dict):
        for facility_id, zone_id in explicit.items():
            key = _text(facility_id)
            if key and key not in assignments:
                assignments[key] = _text(zone_id) or FALLBACK_ZONE_ID
    zones = saved.get("zones")
    if isinstance(zones, (list, tuple)):
        for zone in zones:
            if not isinstance(zone, dict):
                continue
            zone_id = _text(zone.get("id"))
            if not zone_id:
                continue
            for facility_id in _id_list(zone.get("facility_ids")):
                assignments.setdefault(facility_id, zone_id)
    for facility_id in _id_list(saved.get("unassigned_facility_ids")):
        assignments.setdefault(facility_id, UNASSIGNED_ZONE_ID)
    return assignments


def _clamped_int(value: Any, lo: int, hi: int) -> int | None:
    number = _number(value)
    if number is None:
        return None
    return int(clamp(round(number), lo, hi))


def _cooldown_days(*candidates: Any) -> int | None:
    """First candidate that is a finite number, rounded and clamped to whole days."""
    for value in candidates:
        days = _clamped_int(value, 0, DEFENSE_COOLDOWN_DAYS_MAX)
        if days is not None:
            return days
    return None


def build_layout(safehouse: Any, saved_layout: Any = None, now: int | None = None) -> Layout:
    """Reconcile a saved (possibly custom, possibly garbage) layout with the live facility list.

    Every live facility id ends up in exactly one zone or in unassigned_facility_ids.
    """
    saved = _plain(saved_layout)
    if not isinstance(saved, dict):
        if saved is not None:
            logger.warning("Ignoring malformed saved layout (%s)", type(saved).__name__)
        saved = {}

    safehouse_id = normalize_id(read_field(safehouse, "id")) or normalize_id(saved.get("safehouse_id"))
    facility_ids = collect_safehouse_facility_ids(safehouse)
    assignments = _saved_assignments(saved)

    zones: dict[str, dict[str, Any]] = {}

    def register(zone_id: str, label: str | None = None) -> dict[str, Any]:
        if zone_id not in zones:
            zones[zone_id] = {
                "id": zone_id,
                "label": label or ZONE_LABELS.get(zone_id, zone_id),
                "facility_ids": [],
                "ordinal": None,
            }
        return zones[zone_id]

    for zone_id, label in ZONE_LABELS.items():
        register(zone_id, label)

    saved_zones_raw = saved.get("zones")
    saved_zones = list(saved_zones_raw) if isinstance(saved_zones_raw, (list, tuple)) else []
    saved_zone_by_id: dict[str, dict[str, Any]] = {}
    for zone in saved_zones:
        if not isinstance(zone, dict):
            continue
        zone_id = _text(zone.get("id"))
        if not zone_id or zone_id == UNASSIGNED_ZONE_ID:
            continue
        saved_zone_by_id.setdefault(zone_id, zone)
        entry = register(zone_id, _text(zone.get("label")) or None)
        label = _text(zone.get("label"))
        if label:
            entry["label"] = label
        ordinal = _clamped_int(zone.get("ordinal"), ZONE_ORDINAL_MIN, ZONE_ORDINAL_MAX)
        if ordinal is not None:
            entry["ordinal"] = ordinal

    unassigned: list[str] = []
    for facility_id in facility_ids:
        zone_id = assignments.get(facility_id) or classify_facility_zone(facility_id)
        if zone_id == UNASSIGNED_ZONE_ID:
            if facility_id not in unassigned:
                unassigned.append(facility_id)
            continue
        zone = register(zone_id)
        if facility_id not in zone["facility_ids"]:
            zone["facility_ids"].append(facility_id)

    preferred = _id_list(saved.get("zone_order"))
    if not preferred:
        preferred = [_text(z.get("id")) for z in saved_zones if isinstance(z, dict) and _text(z.get("id"))]
    if preferred or saved_zones:
        zone_order: list[str] = []
        for zone_id in preferred:
            if zone_id in zones and zone_id not in zone_order:
                zone_order.append(zone_id)
        zone_order.extend(z for z in zones if z not in zone_order)
    else:
        zone_order = [z["id"] for z in sorted(zones.values(), key=lambda z: z["label"].casefold())]

    out_zones = []
    for zone_id in zone_order:
        zone = zones[zone_id]
        saved_zone = saved_zone_by_id.get(zone_id, {})
        score = _clamped_int(saved_zone.get("defense_score"), ZONE_SCORE_MIN, ZONE_SCORE_MAX)
        out_zones.append({
            "id": zone_id,
            "label": zone["label"],
            "facility_ids": list(zone["facility_ids"]),
            "defense_score": score if score is not None else len(zone["facility_ids"]),
            "ordinal": zone["ordinal"],
        })

    assignments_by_facility: dict[str, str] = {}
    for zone in out_zones:
        for facility_id in zone["facility_ids"]:
            assignments_by_facility.setdefault(facility_id, zone["id"])
    for facility_id in unassigned:
        assignments_by_facility.setdefault(facility_id, UNASSIGNED_ZONE_ID)

    saved_updated_at = _number(saved.get("updated_at"))
    is_custom = saved.get("source") == "custom" and saved_updated_at is not None
    return Layout(
        safehouse_id=safehouse_id,
        zones=out_zones,
        zone_order=zone_order,
        unassigned_facility_ids=unassigned,
        assignments_by_facility=assignments_by_facility,
        source="custom" if is_custom else "heuristic",
        updated_at=int(saved_updated_at) if is_custom else (now if now is not None else now_ms()),
    )


def heat_tier_escalation(heat_tier: Any) -> int:
    return HEAT_TIER_ESCALATION.get(_text(heat_tier).lower(), 0)


def _coerce_tracks(existing: Iterable[Any] | None) -> list[dict[str, Any]]:
    tracks: list[dict[str, Any]] = []
    for raw in existing or ():
        track = _plain(raw)
        if not isinstance(track, dict) or not _text(track.get("id")):
            continue
        track_max = _number(track.get("max"))
        track_max = int(track_max) if track_max is not None and track_max > 0 else ESCALATION_TRACK_DEFAULT_MAX
        value = _number(track.get("value")) or 0
        tracks.append({
            "id": _text(track.get("id")),
            "label": _text(track.get("label")) or _text(track.get("id")),
            "value": int(clamp(round(value), 0, track_max)),
            "max": track_max,
            "status": track.get("status") if track.get("status") in ("active", "escalating", "stabilizing") else "active",
        })
    return tracks


def build_escalation_tracks(
    existing: Iterable[Any] | None = None,
    base_pressure: int = ESCALATION_BASE_PRESSURE,
    heat_tier: Any = "calm",
) -> list[EscalationTrack]:
    """Accumulate pressure onto existing tracks (or fresh defaults).

    The first track gets base_pressure + tier modifier, later tracks
    base_pressure + max(0, modifier - 1).
    """
    modifier = heat_tier_escalation(heat_tier)
    tracks = _coerce_tracks(existing)
    if not tracks:
        tracks = [
            {"id": track_id, "label": label, "value": 0, "max": ESCALATION_TRACK_DEFAULT_MAX, "status": "active"}
            for track_id, label in DEFAULT_TRACKS
        ]
    out = []
    for index, track in enumerate(tracks):
        increment = base_pressure + (modifier if index == 0 else max(0, modifier - 1))
        value = int(clamp(track["value"] + increment, 0, track["max"]))
        out.append(EscalationTrack(
            id=track["id"],
            label=track["label"],
            value=value,
            max=track["max"],
            status="escalating" if value >= track["max"] - 1 else "active",
        ))
    return out


def build_recommended_actions(layout: Any, tracks: Iterable[Any] | None) -> list[RecommendedAction]:
    """Fortify the weakest zone, stabilize a track near its cap, else rotate crews."""
    layout_data = _plain(layout)
    if not isinstance(layout_data, dict):
        return []
    zones = [
        z for z in (layout_data.get("zones") or [])
        if isinstance(z, dict) and z.get("id") != UNASSIGNED_ZONE_ID
    ]
    actions: list[RecommendedAction] = []

    if zones:
        weakest = sorted(zones, key=lambda z: _number(z.get("defense_score")) or 0)[0]
        count = len(weakest.get("facility_ids") or [])
        actions.append(RecommendedAction(
            id=f"fortify-{weakest['id']}",
            label=f"Fortify {weakest['label']}",
            summary=f"{weakest['label']} hosts {count or 'no'} facilities – reinforce patrols and counter-surveillance.",
        ))

    track_data = _coerce_tracks(tracks)
    if track_data:
        hottest = sorted(track_data, key=lambda t: -t["value"])[0]
        if hottest["value"] >= hottest["max"] - 1:
            actions.append(RecommendedAction(
                id=f"stabilize-{hottest['id']}",
                label=f"Stabilize {hottest['label']}",
                summary=(
                    f"{hottest['label']} is at {hottest['value']}/{hottest['max']}. "
                    "Deploy countermeasures now to avoid a breach."
                ),
            ))

    if not actions and zones:
        actions.append(RecommendedAction(
            id="rotate-crews",
            label="Rotate safehouse crews",
            summary="No critical hotspots detected – rotate watchers and reset traps to stay ahead of incursions.",
        ))
    return actions[:DEFENSE_RECOMMENDED_ACTIONS_CAP]


def build_scenario_summary_lines(scenario: Any) -> list[str]:
    data = _plain(scenario)
    if not isinstance(data, dict):
        return []
    lines = []
    for track in data.get("escalation_tracks") or []:
        lines.append(f"{track['label']}: {track['value']}/{track['max']} pressure ({track['status']})")
    actions = data.get("recommended_actions") or []
    if actions:
        lines.append("Recommended actions: " + ", ".join(a["label"] for a in actions))
    cooldown = data.get("cooldown_days")
    if cooldown is not None:
        lines.append(f"Cooldown once resolved: {cooldown} day{'' if cooldown == 1 else 's'}.")
    return lines


def _alert_id(alert: Any) -> str | None:
    if isinstance(alert, str):
        return normalize_id(alert)
    return normalize_id(read_field(alert, "id", "alert_id"))


def _choice_id(choice: Any) -> str | None:
    if isinstance(choice, str):
        return normalize_id(choice)
    return normalize_id(read_field(choice, "id"))


class SafehouseDefenseManager:
    """Per-alert defense scenarios over a caller-owned game state dict.

    A non-dict state gives an inert manager: every call returns None or [].
    """

    def __init__(self, state: Any, now_fn: Callable[[], int] | None = None) -> None:
        self._state = state if isinstance(state, dict) else None
        self._now = now_fn or now_ms
        if self._state is None:
            logger.debug("Safehouse defense manager created without a state container")
        else:
            self._ensure_state()

    def _ensure_state(self) -> dict[str, Any] | None:
        if self._state is None:
            return None
        container = self._state.get(DEFENSE_STATE_KEY)
        if not isinstance(container, dict):
            if container is not None:
                logger.warning("Resetting malformed %s (%s)", DEFENSE_STATE_KEY, type(container).__name__)
            container = {"layouts_by_safehouse": {}, "scenarios_by_alert": {}, "history": []}
            self._state[DEFENSE_STATE_KEY] = container
        for key, empty in (("layouts_by_safehouse", dict), ("scenarios_by_alert", dict), ("history", list)):
            if not isinstance(container.get(key), empty):
                if key in container:
                    logger.warning("Resetting malformed %s.%s", DEFENSE_STATE_KEY, key)
                container[key] = empty()
        return container

    def _snapshot(self, scenario: Any) -> DefenseScenario | None:
        if not isinstance(scenario, dict):
            return None
        raw_days = scenario.get("cooldown_days")
        if raw_days is not None and raw_days != _cooldown_days(raw_days):
            logger.warning("Coercing cooldown_days %r on scenario %s", raw_days, scenario.get("alert_id"))
            scenario["cooldown_days"] = _cooldown_days(raw_days)
        try:
            return DefenseScenario.model_validate(copy.deepcopy(scenario))
        except ValidationError as e:
            log_error_with_context(
                e,
                "defense.snapshot",
                safehouse_id=scenario.get("safehouse_id"),
                alert_id=scenario.get("alert_id"),
                level=logging.WARNING,
            )
            return None

    def activate_scenario(
        self,
        alert: Any,
        safehouse: Any = None,
        heat_tier: str | None = "calm",
        cooldown_days: int | None = None,
        now: int | None = None,
    ) -> DefenseScenario | None:
        """Create or refresh the scenario for an alert; tracks accumulate across activations."""
        container = self._ensure_state()
        alert_id = _alert_id(alert)
        if container is None or not alert_id:
            return None
        timestamp = now if now is not None else self._now()
        tier = _text(heat_tier).lower() or "calm"

        safehouse_id = normalize_id(read_field(safehouse, "id"))
        saved_layout = container["layouts_by_safehouse"].get(safehouse_id) if safehouse_id else None
        layout = build_layout(safehouse, saved_layout, now=timestamp)
        layout_data = layout.model_dump()
        container["layouts_by_safehouse"][layout.safehouse_id or safehouse_id or "default"] = layout_data

        previous = container["scenarios_by_alert"].get(alert_id)
        if not isinstance(previous, dict):
            previous = {}
        tracks = build_escalation_tracks(previous.get("escalation_tracks"), heat_tier=tier)
        history = previous.get("history") if isinstance(previous.get("history"), list) else []
        cooldown_days = _cooldown_days(
            cooldown_days,
            previous.get("cooldown_days"),
            read_field(alert, "cooldown_days") if not isinstance(alert, str) else None,
        )

        scenario = {
            "alert_id": alert_id,
            "safehouse_id": safehouse_id or previous.get("safehouse_id"),
            "status": "active",
            "heat_tier": tier,
            "cooldown_days": cooldown_days,
            "started_at": previous.get("started_at") or timestamp,
            "updated_at": timestamp,
            "resolved_at": None,
            "last_choice_id": previous.get("last_choice_id"),
            "last_summary": previous.get("last_summary"),
            "layout": layout_data,
            "escalation_tracks": [t.model_dump() for t in tracks],
            "recommended_actions": [a.model_dump() for a in build_recommended_actions(layout, tracks)],
            "history": history[-(DEFENSE_SCENARIO_HISTORY_CAP - 1):],
        }
        container["scenarios_by_alert"][alert_id] = scenario
        logger.info(
            "Defense scenario %s %s (heat=%s, tracks=%s)",
            alert_id,
            "refreshed" if previous else "activated",
            tier,
            [t.value for t in tracks],
        )
        return self._snapshot(scenario)

    def get_scenario(self, alert_id: Any) -> DefenseScenario | None:
        container = self._ensure_state()
        key = _alert_id(alert_id)
        if container is None or not key:
            return None
        return self._snapshot(container["scenarios_by_alert"].get(key))

    def get_scenario_summary_lines(self, alert_id: Any) -> list[str]:
        return build_scenario_summary_lines(self.get_scenario(alert_id))

    def record_resolution(
        self,
        alert: Any,
        choice: Any,
        summary: str | None = None,
        resolved_at: int | None = None,
    ) -> DefenseScenario | None:
        """Move a scenario to cooldown and log the choice.

        Calling again with the same resolved_at updates the last history entries in place.
        """
        container = self._ensure_state()
        alert_id = _alert_id(alert)
        if container is None or not alert_id:
            return None
        scenario = container["scenarios_by_alert"].get(alert_id)
        if not isinstance(scenario, dict):
            return None
        resolved_at = resolved_at if resolved_at is not None else self._now()
        choice_id = _choice_id(choice)

        tracks = [
            {**track, "value": int(clamp(track["value"] - 1, 0, track["max"])), "status": "stabilizing"}
            for track in _coerce_tracks(scenario.get("escalation_tracks"))
        ]
        scenario.update({
            "status": "cooldown",
            "resolved_at": resolved_at,
            "updated_at": resolved_at,
            "last_choice_id": choice_id,
            "last_summary": summary,
            "escalation_tracks": tracks,
        })
        scenario["recommended_actions"] = [
            a.model_dump() for a in build_recommended_actions(scenario.get("layout"), tracks)
        ]

        history = scenario.get("history") if isinstance(scenario.get("history"), list) else []
        last = history[-1] if history and isinstance(history[-1], dict) else None
        if last is not None and last.get("resolved_at") == resolved_at:
            last["choice_id"] = choice_id or last.get("choice_id")
            last["summary"] = summary if summary is not None else last.get("summary")
        else:
            history.append({"choice_id": choice_id, "summary": summary, "resolved_at": resolved_at})
        scenario["history"] = history[-DEFENSE_SCENARIO_HISTORY_CAP:]

        global_history = container["history"]
        last_global = global_history[-1] if global_history and isinstance(global_history[-1], dict) else None
        if (
            last_global is not None
            and last_global.get("alert_id") == alert_id
            and last_global.get("resolved_at") == resolved_at
        ):
            last_global["choice_id"] = choice_id or last_global.get("choice_id")
            last_global["summary"] = summary if summary is not None else last_global.get("summary")
        else:
            global_history.append({
                "alert_id": alert_id,
                "choice_id": choice_id,
                "summary": summary,
                "resolved_at": resolved_at,
            })
        container["history"] = global_history[-DEFENSE_GLOBAL_HISTORY_CAP:]

        logger.info("Defense scenario %s resolved with %s, cooling down", alert_id, choice_id)
        return self._snapshot(scenario)

    def save_custom_layout(self, safehouse_id: Any, layout: Any, now: int | None = None) -> bool:
        """Store a player-arranged layout; the next activation for that safehouse honours it."""
        container = self._ensure_state()
        key = normalize_id(safehouse_id)
        data = _plain(layout)
        if container is None or not key or not isinstance(data, Mapping):
            return False
        stored = copy.deepcopy(dict(data))
        stored.update({
            "safehouse_id": key,
            "source": "custom",
            "updated_at": now if now is not None else self._now(),
        })
        container["layouts_by_safehouse"][key] = stored
        logger.info("Saved custom defense layout for %s", key)
        return True


def create_safehouse_defense_manager(state: Any, now_fn: Callable[[], int] | None = None) -> SafehouseDefenseManager:
    return SafehouseDefenseManager(state, now_fn=now_fn)
