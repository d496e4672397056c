"""Crew chemistry events: band-transition prompts, relationship arcs, and choice resolution.

State lives in the caller's game state under `relationship_events`:

    pending             queued event dicts (choice effects included), at most 8
    last_band_by_team   team key -> last seen chemistry band
    cooldown_by_key     "team:band" / "arc:arc_id:team" -> last fire time (epoch ms)
    history             resolved choices, at most 12
    arc_state_by_team   team key -> {"active": {arc_id: arc state}, "history": [...]}
    arc_history         completed arcs across all teams, at most 16

Callers only ever get frozen views back; the stored dicts stay internal.
"""
from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from backend.app.config import MS_PER_HOUR, band_cooldown_ms
from backend.app.constants import (
    RELATIONSHIP_ARC_HISTORY_CAP,
    RELATIONSHIP_ARC_STEP_HISTORY_CAP,
    RELATIONSHIP_HISTORY_CAP,
    RELATIONSHIP_PENDING_CAP,
    RELATIONSHIP_TEAM_ARC_HISTORY_CAP,
)
from backend.app.content.loader import load_relationship_tables
from backend.app.core.records import normalize_id, now_ms, read_field, to_finite
from backend.app.models.relationships import (
    ArcStepConfig,
    RelationshipArcConfig,
    RelationshipChoiceConfig,
    RelationshipEventView,
    RelationshipResolution,
)
from backend.app.world.crew_effects import adjust_member_affinity, adjust_member_loyalty, adjust_member_trait

logger = logging.getLogger(__name__)

STATE_KEY = "relationship_events"
TRIGGER_BANDS = ("synergy", "strain")
ARC_BAND_ICONS = {"synergy": "🤝", "strain": "⚡"}


def _crew_id_list(crew_ids: Any) -> list[str]:
    """Trimmed ids, de-duplicated in order; [] for anything that is not a collection of ids."""
    if crew_ids is None or isinstance(crew_ids, (str, bytes)):
        return []
    try:
        raw = list(crew_ids)
    except TypeError:
        return []
    ids: list[str] = []
    for crew_id in raw:
        normalized = normalize_id(crew_id)
        if normalized and normalized not in ids:
            ids.append(normalized)
    return ids


def team_key(crew_ids: Iterable[Any] | None) -> str | None:
    """Order-independent key for a crew combination; None for fewer than two distinct ids."""
    ids = _crew_id_list(crew_ids)
    if len(ids) < 2:
        return None
    return "|".join(sorted(ids))


def _ensure_state(state: Any) -> dict[str, Any] | None:
    if not isinstance(state, dict):
        return None
    container = state.get(STATE_KEY)
    if not isinstance(container, dict):
        if container is not None:
            logger.warning("Resetting malformed %s (%s)", STATE_KEY, type(container).__name__)
        container = {}
        state[STATE_KEY] = container
    for key, empty in (
        ("pending", list),
        ("last_band_by_team", dict),
        ("cooldown_by_key", dict),
        ("history", list),
        ("arc_state_by_team", dict),
        ("arc_history", list),
    ):
        if not isinstance(container.get(key), empty):
            if key in container:
                logger.warning("Resetting malformed %s.%s", STATE_KEY, key)
            container[key] = empty()
    bad = [e for e in container["pending"] if not isinstance(e, dict)]
    if bad:
        logger.warning("Dropping %d malformed pending relationship events", len(bad))
        container["pending"] = [e for e in container["pending"] if isinstance(e, dict)]
    return container


def _team_arc_state(container: dict[str, Any], key: str) -> dict[str, Any]:
    team_state = container["arc_state_by_team"].get(key)
    if not isinstance(team_state, dict):
        team_state = {"active": {}, "history": []}
        container["arc_state_by_team"][key] = team_state
    if not isinstance(team_state.get("active"), dict):
        team_state["active"] = {}
    if not isinstance(team_state.get("history"), list):
        team_state["history"] = []
    return team_state


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    number = abs(int(number))
    out = ""
    while True:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
        if not number:
            return out


def _event_id(prefix: str, now: int) -> str:
    return f"{prefix}-{_base36(now)}-{uuid.uuid4().hex[:4]}"


def _member_name(member: Any) -> str:
    name = read_field(member, "name")
    return name.strip() if isinstance(name, str) and name.strip() else "Crew member"


def _member_lookup(members: Iterable[Any] | None) -> dict[str, Any]:
    lookup: dict[str, Any] = {}
    for member in members or ():
        member_id = normalize_id(read_field(member, "id"))
        if member_id and member_id not in lookup:
            lookup[member_id] = member
    return lookup


def _mission_snapshot(mission_context: Any) -> dict[str, Any] | None:
    if not mission_context:
        return None
    return {
        "mission_id": normalize_id(read_field(mission_context, "mission_id", "id")),
        "mission_name": normalize_id(read_field(mission_context, "mission_name", "name")),
        "outcome": normalize_id(read_field(mission_context, "outcome")),
    }


def format_arc_roster(names: list[str]) -> str:
    if not names:
        return "The crew"
    if len(names) <= 2:
        return " & ".join(names)
    return f"{names[0]}, {names[1]} +{len(names) - 2}"


def _format(template: str | None, values: dict[str, str]) -> str:
    if not template:
        return ""
    try:
        return template.format_map(values)
    except (KeyError, IndexError, ValueError) as e:
        logger.warning("Relationship template %r could not be formatted: %s", template, e)
        return template


def _choice_dict(choice: RelationshipChoiceConfig, values: dict[str, str]) -> dict[str, Any]:
    return {
        "id": choice.id,
        "label": choice.label,
        "description": _format(choice.description, values),
        "narrative": _format(choice.narrative, values) or None,
        "effects": choice.effects.model_dump(),
    }


def _push_pending(container: dict[str, Any], event: dict[str, Any], front: bool = False) -> None:
    pending = container["pending"]
    if front:
        pending.insert(0, event)
    else:
        pending.append(event)
    while len(pending) > RELATIONSHIP_PENDING_CAP:
        oldest = min(
            (i for i, e in enumerate(pending) if e is not event),
            key=lambda i: (to_finite(pending[i].get("triggered_at"), 0.0), i),
        )
        dropped = pending.pop(oldest)
        logger.debug("Pending relationship queue full, dropped %s", dropped.get("id"))


def _view(event: dict[str, Any]) -> RelationshipEventView | None:
    try:
        return RelationshipEventView.model_validate(copy.deepcopy(event))
    except ValidationError as e:
        logger.warning("Pending relationship event %s is malformed: %s", event.get("id"), e)
        return None


def _signed(delta: int) -> str:
    return f"+{delta}" if delta > 0 else str(delta)


def _effects_of(choice: Any) -> dict[str, Any]:
    effects = read_field(choice, "effects")
    if hasattr(effects, "model_dump"):
        effects = effects.model_dump()
    return effects if isinstance(effects, dict) else {}


def apply_choice_effects(choice: Any, crew_members: list[Any], state: Any, band: str | None) -> list[str]:
    """Apply a relationship choice to the crew and game state.

    Returns the human-readable adjustment lines ("Crew loyalty +1 each", ...).
    Clearing the band itself is done by the caller, which knows the team key.
    """
    adjustments: list[str] = []
    if not choice:
        return adjustments
    effects = _effects_of(choice)
    members = [m for m in crew_members or () if m is not None]

    loyalty = round(to_finite(effects.get("loyalty_delta"), 0.0))
    if loyalty and members:
        for member in members:
            adjust_member_loyalty(member, loyalty)
        adjustments.append(f"Crew loyalty {_signed(loyalty)} each")

    affinity = round(to_finite(effects.get("affinity_delta"), 0.0))
    if affinity and len(members) >= 2:
        for index, member in enumerate(members):
            member_id = normalize_id(read_field(member, "id"))
            for peer in members[index + 1:]:
                peer_id = normalize_id(read_field(peer, "id"))
                adjust_member_affinity(member, peer_id, affinity)
                adjust_member_affinity(peer, member_id, affinity)
        adjustments.append(f"Affinity {_signed(affinity)} between crew")

    traits = effects.get("trait_adjustments")
    if isinstance(traits, dict) and members:
        parts = []
        for trait_key, raw in traits.items():
            delta = round(to_finite(raw, 0.0))
            if not delta:
                continue
            for member in members:
                adjust_member_trait(member, str(trait_key), delta)
            parts.append(f"{str(trait_key).capitalize()} {_signed(delta)}")
        if parts:
            adjustments.append(f"Trait gains: {', '.join(parts)}")

    funds = round(to_finite(effects.get("funds_delta"), 0.0))
    if funds and isinstance(state, dict):
        current = state.get("funds")
        if not isinstance(current, bool) and isinstance(current, (int, float)):
            state["funds"] = int(max(0, round(current + funds)))
            sign = "+" if funds > 0 else "-"
            adjustments.append(f"Funds {sign}${abs(funds):,}")

    if effects.get("clear_band") and band:
        adjustments.append(f"Relationship band reset from {band}")

    return adjustments


def _first_choice(arc_state: dict[str, Any]) -> str | None:
    previous = arc_state.get("previous_choices")
    if isinstance(previous, list) and previous and isinstance(previous[0], dict):
        return previous[0].get("choice_id")
    return None


def _step_choices(step: ArcStepConfig, first_choice: str | None) -> list[RelationshipChoiceConfig]:
    choices = []
    for choice in step.choices:
        if choice.when_first_choice and choice.when_first_choice != first_choice:
            continue
        if choice.unless_first_choice and choice.unless_first_choice == first_choice:
            continue
        choices.append(choice)
    return choices


def _build_arc_event(
    arc: RelationshipArcConfig,
    arc_state: dict[str, Any],
    mission_context: dict[str, Any] | None,
    now: int,
) -> dict[str, Any] | None:
    step_index = int(to_finite(arc_state.get("step_index"), 0.0))
    if not 0 <= step_index < len(arc.steps):
        return None
    step = arc.steps[step_index]
    context = mission_context or arc_state.get("mission_context") or {}
    mission_name = context.get("mission_name") if isinstance(context, dict) else None
    names = list(arc_state.get("crew_names") or [])
    roster = format_arc_roster(names)
    values = {"roster": roster, "mission_name": mission_name or ""}
    values["mission_suffix"] = _format(step.mission_suffix if mission_name else step.default_suffix, values)

    choices = [_choice_dict(c, values) for c in _step_choices(step, _first_choice(arc_state))]
    if not choices:
        logger.warning("Arc %s step %s has no available choices", arc.id, step.id)
        return None

    return {
        "id": _event_id(f"arc-{arc.id}-{step.id}", now),
        "type": "arc",
        "band": arc.band,
        "crew_ids": list(arc_state.get("crew_ids") or []),
        "crew_names": names,
        "prompt": _format(step.prompt, values) or step.label,
        "triggered_at": now,
        "cooldown_ms": int(round(arc.cooldown_hours * MS_PER_HOUR)),
        "mission_context": copy.deepcopy(mission_context or arc_state.get("mission_context")),
        "badges": [
            {"type": "relationship-arc", "icon": ARC_BAND_ICONS.get(arc.band, "🤝"), "label": arc.label},
            {"type": "arc-step", "icon": "📈", "label": f"Step {step_index + 1}/{len(arc.steps)}"},
        ],
        "arc": {
            "arc_id": arc.id,
            "arc_label": arc.label,
            "step_id": step.id,
            "step_index": step_index,
            "step_count": len(arc.steps),
        },
        "choices": choices,
    }


class CrewRelationshipService:
    """Relationship events over one game state container.

    A non-dict state gives an inert service: nothing fires, nothing resolves.
    """

    def __init__(self, state: Any, now_fn: Callable[[], int] | None = None) -> None:
        self._state = state if isinstance(state, dict) else None
        self._now = now_fn or now_ms
        _ensure_state(self._state)

    def _container(self) -> dict[str, Any] | None:
        return _ensure_state(self._state)

    def record_chemistry_milestones(
        self,
        crew_ids: Iterable[Any] | None,
        crew_members: Iterable[Any] | None = None,
        chemistry_profile: Any = None,
        mission_context: Any = None,
    ) -> RelationshipEventView | None:
        """Fire a band event when the team has just entered synergy or strain.

        The team's last band is always updated. An event needs a transition, the
        matching entered_{band}_band milestone flag, and an elapsed cooldown.
        """
        container = self._container()
        ids = _crew_id_list(crew_ids)
        key = team_key(ids)
        if container is None or key is None or not chemistry_profile:
            return None

        raw_band = read_field(chemistry_profile, "band")
        band = raw_band.strip().lower() if isinstance(raw_band, str) and raw_band.strip() else "neutral"
        previous = container["last_band_by_team"].get(key, "neutral")
        container["last_band_by_team"][key] = band

        if band not in TRIGGER_BANDS or band == previous:
            logger.debug("No band transition for %s (%s -> %s)", key, previous, band)
            return None
        milestones = read_field(chemistry_profile, "milestones")
        if not read_field(milestones, f"entered_{band}_band"):
            logger.debug("Team %s entered %s without the milestone flag", key, band)
            return None

        config = load_relationship_tables().bands.get(band)
        if config is None:
            logger.warning("No relationship event configured for band %s", band)
            return None

        now = self._now()
        cooldown_ms = band_cooldown_ms(band, config.cooldown_hours)
        cooldown_key = f"{key}:{band}"
        last = container["cooldown_by_key"].get(cooldown_key)
        if last is not None and now - to_finite(last, 0.0) < cooldown_ms:
            logger.debug("Relationship event %s on cooldown", cooldown_key)
            return None

        lookup = _member_lookup(crew_members)
        names = [_member_name(lookup.get(i)) for i in ids]
        snapshot = _mission_snapshot(mission_context)
        mission_name = snapshot["mission_name"] if snapshot else None
        values = {"roster": " & ".join(names), "mission_name": mission_name or ""}
        template = config.prompt_with_mission if mission_name and config.prompt_with_mission else config.prompt

        event = {
            "id": _event_id(f"relationship-{band}", now),
            "type": config.type,
            "band": band,
            "crew_ids": ids,
            "crew_names": names,
            "prompt": _format(template, values),
            "triggered_at": now,
            "cooldown_ms": cooldown_ms,
            "mission_context": snapshot,
            "badges": [],
            "arc": None,
            "choices": [_choice_dict(c, values) for c in config.choices],
        }
        container["cooldown_by_key"][cooldown_key] = now
        _push_pending(container, event)
        logger.info("Relationship event %s fired for %s", event["id"], key)

        self._maybe_start_arc(container, key, band, ids, names, snapshot, now)
        return _view(event)

    def _maybe_start_arc(
        self,
        container: dict[str, Any],
        key: str,
        band: str,
        crew_ids: list[str],
        crew_names: list[str],
        mission_context: dict[str, Any] | None,
        now: int,
    ) -> dict[str, Any] | None:
        team_state = _team_arc_state(container, key)
        for arc in load_relationship_tables().arcs:
            if arc.band != band or arc.id in team_state["active"]:
                continue
            cooldown_key = f"arc:{arc.id}:{key}"
            last = container["cooldown_by_key"].get(cooldown_key)
            if last is not None and now - to_finite(last, 0.0) < arc.cooldown_hours * MS_PER_HOUR:
                continue
            arc_state = {
                "arc_id": arc.id,
                "crew_ids": list(crew_ids),
                "crew_names": list(crew_names),
                "mission_context": copy.deepcopy(mission_context),
                "step_index": 0,
                "previous_choices": [],
                "started_at": now,
                "updated_at": now,
                "status": "active",
                "history": [],
            }
            event = _build_arc_event(arc, arc_state, mission_context, now)
            if event is None:
                continue
            team_state["active"][arc.id] = arc_state
            container["cooldown_by_key"][cooldown_key] = now
            _push_pending(container, event, front=True)
            logger.info("Relationship arc %s started for %s", arc.id, key)
            return event
        return None

    def get_pending_events(self) -> list[RelationshipEventView]:
        container = self._container()
        if container is None:
            return []
        return [v for v in (_view(e) for e in container["pending"]) if v is not None]

    def resolve_event_choice(self, event_id: Any, choice_id: Any) -> RelationshipResolution | None:
        """Resolve a pending event; None when the event or choice is gone or never existed."""
        container = self._container()
        event_id = normalize_id(event_id)
        choice_id = normalize_id(choice_id)
        if container is None or not event_id or not choice_id:
            return None

        pending = container["pending"]
        index = next((i for i, e in enumerate(pending) if e.get("id") == event_id), None)
        if index is None:
            logger.debug("Relationship event %s is not pending", event_id)
            return None
        event = pending[index]
        choices = event.get("choices") if isinstance(event.get("choices"), list) else []
        choice = next((c for c in choices if isinstance(c, dict) and c.get("id") == choice_id), None)
        if choice is None:
            logger.debug("Unknown choice %s for relationship event %s", choice_id, event_id)
            return None

        crew_ids = _crew_id_list(event.get("crew_ids"))
        roster = self._state.get("crew") if isinstance(self._state.get("crew"), list) else []
        lookup = _member_lookup(roster)
        members = [lookup[i] for i in crew_ids if i in lookup]

        details = apply_choice_effects(choice, members, self._state, event.get("band"))
        key = team_key(crew_ids)
        if _effects_of(choice).get("clear_band") and key:
            container["last_band_by_team"][key] = "neutral"

        pending.pop(index)
        resolved_at = self._now()
        names = list(event.get("crew_names") or [])
        resolution = {
            "event_id": event_id,
            "event_type": event.get("type") or event.get("band") or "relationship",
            "choice_id": choice_id,
            "choice_label": choice.get("label") or choice_id,
            "summary": f"{' & '.join(names)} – {choice.get('label') or choice_id}",
            "details": details,
            "resolved_at": resolved_at,
        }
        container["history"].append(dict(resolution))
        container["history"] = container["history"][-RELATIONSHIP_HISTORY_CAP:]

        arc_meta = event.get("arc") if isinstance(event.get("arc"), dict) else None
        if arc_meta and key:
            self._advance_arc(container, key, arc_meta, event, choice, resolution)
        logger.info("Relationship event %s resolved with %s", event_id, choice_id)

        return RelationshipResolution.model_validate({
            **resolution,
            "prompt": event.get("prompt") or "",
            "arc": copy.deepcopy(arc_meta),
        })

    def _advance_arc(
        self,
        container: dict[str, Any],
        key: str,
        arc_meta: dict[str, Any],
        event: dict[str, Any],
        choice: dict[str, Any],
        resolution: dict[str, Any],
    ) -> None:
        arc = next((a for a in load_relationship_tables().arcs if a.id == arc_meta.get("arc_id")), None)
        team_state = _team_arc_state(container, key)
        arc_state = team_state["active"].get(arc_meta.get("arc_id"))
        if arc is None or not isinstance(arc_state, dict):
            logger.warning("Arc %s for %s is no longer tracked", arc_meta.get("arc_id"), key)
            return

        resolved_at = resolution["resolved_at"]
        if not isinstance(arc_state.get("previous_choices"), list):
            arc_state["previous_choices"] = []
        arc_state["previous_choices"].append({"step_id": arc_meta.get("step_id"), "choice_id": choice["id"]})
        history = arc_state.get("history") if isinstance(arc_state.get("history"), list) else []
        history.append({
            "step_id": arc_meta.get("step_id"),
            "choice_id": choice["id"],
            "choice_label": resolution["choice_label"],
            "resolved_at": resolved_at,
            "summary": resolution["summary"],
            "details": list(resolution["details"]),
        })
        arc_state["history"] = history[-RELATIONSHIP_ARC_STEP_HISTORY_CAP:]
        arc_state["step_index"] = int(to_finite(arc_state.get("step_index"), 0.0)) + 1
        arc_state["updated_at"] = resolved_at

        if arc_state["step_index"] >= len(arc.steps):
            arc_state["status"] = "completed"
            arc_state["completed_at"] = resolved_at
            del team_state["active"][arc.id]
            team_state["history"].append({"arc_id": arc.id, "summary": resolution["summary"], "resolved_at": resolved_at})
            team_state["history"] = team_state["history"][-RELATIONSHIP_TEAM_ARC_HISTORY_CAP:]
            container["arc_history"].append({
                "arc_id": arc.id,
                "arc_label": arc.label,
                "crew_names": list(event.get("crew_names") or []),
                "summary": resolution["summary"],
                "resolved_at": resolved_at,
            })
            container["arc_history"] = container["arc_history"][-RELATIONSHIP_ARC_HISTORY_CAP:]
            container["cooldown_by_key"][f"arc:{arc.id}:{key}"] = resolved_at
            logger.info("Relationship arc %s completed for %s", arc.id, key)
            return

        next_event = _build_arc_event(arc, arc_state, event.get("mission_context"), resolved_at)
        if next_event is not None:
            _push_pending(container, next_event, front=True)
            logger.info("Relationship arc %s advanced to step %d", arc.id, arc_state["step_index"] + 1)


def create_crew_relationship_service(
    state: Any,
    now_fn: Callable[[], int] | None = None,
) -> CrewRelationshipService:
    return CrewRelationshipService(state, now_fn=now_fn)
