"""``carthief deck`` – build the mission event deck for a mission and print it as JSON."""
from __future__ import annotations

import json
from typing import Any

from backend.app.core.mission_events import build_deck_context, build_mission_event_deck
from backend.app.core.safehouse_incursions import build_safehouse_incursion_events
from backend.app.models.events import MissionEventCandidate


def register(subparsers) -> None:
    p = subparsers.add_parser("deck", help="Build a mission event deck")
    p.add_argument("--difficulty", type=float, default=1, help="Mission difficulty (default: 1)")
    p.add_argument("--risk-tier", type=str, default=None, help="low | moderate | high")
    p.add_argument("--crackdown-tier", type=str, default=None, help="calm | alert | lockdown")
    p.add_argument("--poi-type", type=str, default=None, help="Point of interest type (e.g. vault, tech-hub)")
    p.add_argument("--poi-name", type=str, default=None, help="Point of interest display name")
    p.add_argument("--poi-id", type=str, default=None, help="Point of interest id")
    p.add_argument(
        "--facility",
        action="append",
        default=[],
        help="Safehouse facility id; repeat to add incursion events to the deck",
    )
    p.add_argument("--heat-tier", type=str, default=None, help="City heat tier for incursion events")
    p.add_argument("--full", action="store_true", help="Print full event definitions")
    p.set_defaults(func=run)


def _candidate_json(candidate: MissionEventCandidate, full: bool) -> dict[str, Any]:
    data = candidate.model_dump(mode="json", exclude={"event"})
    if full:
        data["event"] = candidate.event.model_dump(mode="json")
    else:
        data["id"] = candidate.id
        data["label"] = candidate.label
        data["trigger_progress"] = candidate.trigger_progress
        data["choices"] = [c.id for c in candidate.choices]
    return data


def run(args) -> int:
    mission: dict[str, Any] = {
        "difficulty": args.difficulty,
        "risk_tier": args.risk_tier,
        "crackdown_tier": args.crackdown_tier,
    }
    if args.poi_type:
        mission["point_of_interest"] = {"id": args.poi_id, "name": args.poi_name, "type": args.poi_type}

    extra = []
    if args.facility or args.heat_tier:
        batch = build_safehouse_incursion_events(
            mission,
            {"safehouse": {"unlocked_amenities": args.facility}, "heat_tier": args.heat_tier},
        )
        extra = batch.events

    context = build_deck_context(mission)
    deck = build_mission_event_deck(mission, extra_events=extra)
    payload = {
        "difficulty": context.difficulty,
        "difficulty_band": context.difficulty_band,
        "risk_tier": context.risk_tier,
        "crackdown_tier": context.crackdown_tier,
        "deck": [_candidate_json(c, args.full) for c in deck],
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0
