"""Point-of-interest events: one context-flavored event per mission POI.

Dispatch is a plain map from POI type to a builder; unknown types get the
generic capitalize/withdraw opportunity.
"""
from __future__ import annotations

from typing import Any, Callable

from backend.app.core.records import normalize_id, read_field
from backend.app.models.events import EventDefinition


def _poi_fields(poi: Any, fallback_id: str, fallback_name: str) -> tuple[str, str, dict[str, Any]]:
    poi_id = normalize_id(read_field(poi, "id"))
    poi_name = normalize_id(read_field(poi, "name"))
    poi_type = normalize_id(read_field(poi, "type"))
    context = {"id": poi_id, "name": poi_name, "type": poi_type}
    return poi_id or fallback_id, poi_name or fallback_name, context


def _choice(choice_id: str, label: str, description: str, narrative: str, **effects: Any) -> dict[str, Any]:
    return {
        "id": choice_id,
        "label": label,
        "description": description,
        "narrative": narrative,
        "effects": effects,
    }


def _build_vault(poi: Any) -> EventDefinition:
    key, name, context = _poi_fields(poi, "vault", "the vault")
    return EventDefinition.model_validate({
        "id": f"poi-{key}-failsafe",
        "label": "Failsafe Countdown",
        "description": f"Emergency shutters begin to seal {name}, threatening to trap the crew and loot inside.",
        "trigger_progress": 0.62,
        "min_difficulty": 1,
        "choices": [
            _choice(
                f"poi-{key}-overload",
                "Overload the failsafe",
                "Burn charge packs to stall the lockdown and keep the vault open.",
                f"They overloaded the failsafe at {name} long enough to finish the pull.",
                payout_multiplier=0.97, heat_delta=-1, success_delta=0.06,
            ),
            _choice(
                f"poi-{key}-cut-losses",
                "Cut the haul and bail",
                "Grab the smallest crates and punch out before the shutters seal.",
                f"Crew bailed early with a lean haul from {name}.",
                payout_multiplier=0.78, duration_multiplier=0.85, success_delta=0.1,
            ),
        ],
        "poi_context": {**context, "type": context["type"] or "vault"},
    })


def _build_tech_hub(poi: Any) -> EventDefinition:
    key, name, context = _poi_fields(poi, "tech", "the lab")
    return EventDefinition.model_validate({
        "id": f"poi-{key}-datafork",
        "label": "Prototype Firewall",
        "description": f"An experimental AI firewall flags the intrusion at {name}.",
        "trigger_progress": 0.48,
        "min_difficulty": 2,
        "choices": [
            _choice(
                f"poi-{key}-recode",
                "Spin up a counter-script",
                "Pause the lift and let your hacker duel the AI for cleaner exfil.",
                f"The crew duelled {name}'s firewall and slipped out ghost-clean.",
                duration_multiplier=1.12, heat_delta=-1.5, success_delta=0.04,
            ),
            _choice(
                f"poi-{key}-scramble",
                "Scramble the drives",
                "Torch a cache of prototypes to blind the system and bolt.",
                f"They torched prototype racks inside {name} to cover their retreat.",
                payout_multiplier=0.9, heat_delta=1.4, success_delta=-0.03,
            ),
        ],
        "poi_context": {**context, "type": context["type"] or "tech-hub"},
    })


def _build_rail_yard(poi: Any) -> EventDefinition:
    key, name, context = _poi_fields(poi, "rail", "the yard")
    return EventDefinition.model_validate({
        "id": f"poi-{key}-switch",
        "label": "Switchyard Shuffle",
        "description": f"A dispatcher reroutes locomotives near {name}, threatening the getaway lane.",
        "trigger_progress": 0.35,
        "min_difficulty": 1,
        "choices": [
            _choice(
                f"poi-{key}-bribe",
                "Bribe the dispatcher",
                "Grease the yard chief to freeze the rail grid in your favor.",
                f"Crew greased the dispatcher and kept {name} running quiet.",
                heat_delta=-0.5, payout_multiplier=0.95,
            ),
            _choice(
                f"poi-{key}-barge-through",
                "Gun engines through the maze",
                "Ride the chaos, risking a pile-up for a faster exit.",
                f"They blasted through the rail maze around {name}.",
                duration_multiplier=0.75, heat_delta=1.1, success_delta=-0.05,
            ),
        ],
        "poi_context": {**context, "type": context["type"] or "rail-yard"},
    })


def _build_smuggling_cache(poi: Any) -> EventDefinition:
    key, name, context = _poi_fields(poi, "cache", "the cache")
    return EventDefinition.model_validate({
        "id": f"poi-{key}-doublecross",
        "label": "Inside Contact",
        "description": f"A fixer tied to {name} demands a cut to stay quiet.",
        "trigger_progress": 0.52,
        "min_difficulty": 1,
        "choices": [
            _choice(
                f"poi-{key}-payoff",
                "Cut them in",
                "Hand over a slice of the score to keep the network friendly.",
                f"They cut the fixer at {name} into the score.",
                payout_multiplier=0.88, heat_delta=-1.2, crew_loyalty_delta=1,
            ),
            _choice(
                f"poi-{key}-ghost",
                "Ghost the contact",
                "Ice the fixer and race the inevitable retaliation.",
                f"Crew ghosted the fixer near {name} and kicked the hornet nest.",
                heat_delta=1.6, success_delta=-0.04, payout_multiplier=1.12,
            ),
        ],
        "poi_context": {**context, "type": context["type"] or "smuggling-cache"},
    })


def _build_showroom(poi: Any) -> EventDefinition:
    key, name, context = _poi_fields(poi, "showroom", "the showroom")
    return EventDefinition.model_validate({
        "id": f"poi-{key}-demo",
        "label": "Surprise Demo Night",
        "description": f"Investors swing by {name} for an unscheduled product demo.",
        "trigger_progress": 0.42,
        "min_difficulty": 2,
        "choices": [
            _choice(
                f"poi-{key}-blend",
                "Blend with the crowd",
                "Throw on glam threads and mingle to stay off sensors.",
                f"They blended with the crowd touring {name} and kept things cool.",
                heat_delta=-0.8, duration_multiplier=1.08,
            ),
            _choice(
                f"poi-{key}-flash",
                "Flash a reckless showcase",
                "Turn the demo into cover for loading the prize ride. Loud but lucrative.",
                f"Crew hijacked the demo at {name} for a bigger payoff.",
                payout_multiplier=1.18, heat_delta=1.3, success_delta=-0.02,
            ),
        ],
        "poi_context": {**context, "type": context["type"] or "showroom"},
    })


def _build_impound_lot(poi: Any) -> EventDefinition:
    key, name, context = _poi_fields(poi, "impound", "the impound lot")
    return EventDefinition.model_validate({
        "id": f"poi-{key}-shift-change",
        "label": "Shift Change",
        "description": f"The night shift at {name} shows up early and starts a vehicle count.",
        "trigger_progress": 0.38,
        "min_difficulty": 1,
        "choices": [
            _choice(
                f"poi-{key}-forge-release",
                "Forge the release papers",
                "Roll the target out the front gate on a doctored release form.",
                f"Forged paperwork walked the ride straight out of {name}.",
                duration_multiplier=1.1, heat_delta=-1, success_delta=0.05,
            ),
            _choice(
                f"poi-{key}-crash-gate",
                "Crash the back gate",
                "Hotwire the target and take the fence with it.",
                f"The crew punched through the back fence of {name} with sirens close behind.",
                duration_multiplier=0.8, heat_delta=1.4, success_delta=-0.04,
            ),
        ],
        "poi_context": {**context, "type": context["type"] or "impound-lot"},
    })


def _build_megacorp_lab(poi: Any) -> EventDefinition:
    key, name, context = _poi_fields(poi, "lab", "the lab")
    return EventDefinition.model_validate({
        "id": f"poi-{key}-biometric-lock",
        "label": "Biometric Lockdown",
        "description": f"Corporate security at {name} rotates every biometric key mid-run.",
        "trigger_progress": 0.58,
        "min_difficulty": 3,
        "choices": [
            _choice(
                f"poi-{key}-clone-badge",
                "Clone an executive badge",
                "Lift an executive's credentials and walk the prototype out quietly.",
                f"A cloned executive badge opened every door in {name}.",
                payout_multiplier=0.92, heat_delta=-1.2, success_delta=0.05,
            ),
            _choice(
                f"poi-{key}-cut-power",
                "Kill the power grid",
                "Blackout the tower and grab everything on the prototype floor.",
                f"The crew blacked out {name} and stripped the prototype floor.",
                payout_multiplier=1.2, heat_delta=1.7, success_delta=-0.05,
            ),
        ],
        "poi_context": {**context, "type": context["type"] or "megacorp-lab"},
    })


def _build_generic(poi: Any) -> EventDefinition:
    key, _name, context = _poi_fields(poi, "site", "the site")
    label_name = context["name"] or "Site"
    place = context["name"] or "the site"
    return EventDefinition.model_validate({
        "id": f"poi-{key}-opportunity",
        "label": f"{label_name} Opportunity",
        "description": f"A fleeting opportunity presents itself inside {place}.",
        "trigger_progress": 0.5,
        "min_difficulty": 1,
        "choices": [
            _choice(
                f"poi-{key}-capitalize",
                "Capitalize on the moment",
                "Press the advantage for more score while drawing attention.",
                f"Crew pressed their luck at {place}.",
                payout_multiplier=1.1, heat_delta=1,
            ),
            _choice(
                f"poi-{key}-withdraw",
                "Stick to the plan",
                "Ignore the distraction and keep the mission tight.",
                f"They ignored the side hustle inside {place}.",
                success_delta=0.05,
            ),
        ],
        "poi_context": context,
    })


POI_EVENT_BUILDERS: dict[str, Callable[[Any], EventDefinition]] = {
    "vault": _build_vault,
    "tech-hub": _build_tech_hub,
    "rail-yard": _build_rail_yard,
    "smuggling-cache": _build_smuggling_cache,
    "showroom": _build_showroom,
    "impound-lot": _build_impound_lot,
    "megacorp-lab": _build_megacorp_lab,
}


def build_poi_event(poi: Any) -> EventDefinition | None:
    """Build the event for a mission's point of interest; None when poi is missing or untyped."""
    if not poi:
        return None
    poi_type = normalize_id(read_field(poi, "type"))
    if not poi_type:
        return None
    builder = POI_EVENT_BUILDERS.get(poi_type.lower(), _build_generic)
    return builder(poi)
