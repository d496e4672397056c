"""``carthief storylines`` – show the loyalty storyline mission a crew member can run next."""
from __future__ import annotations

import json

from backend.app.core.crew_storylines import get_available_crew_storyline_missions, storyline_progress
from backend.app.models.crew import CrewBackground, CrewMember, StoryProgress


def register(subparsers) -> None:
    p = subparsers.add_parser("storylines", help="List available crew storyline missions")
    p.add_argument("--background", type=str, default="default", help="Crew background id (e.g. ghost-operative)")
    p.add_argument("--loyalty", type=int, default=3, help="Crew member loyalty 0-5 (default: 3)")
    p.add_argument("--name", type=str, default="Crew member")
    p.add_argument("--completed", action="append", default=[], help="Completed step id (repeatable)")
    p.set_defaults(func=run)


def run(args) -> int:
    if not 0 <= args.loyalty <= 5:
        print("  ERROR: --loyalty must be between 0 and 5")
        return 1
    member = CrewMember(
        id="cli-crew",
        name=args.name,
        loyalty=args.loyalty,
        background=CrewBackground(id=args.background),
        story_progress=StoryProgress(completed_steps=list(args.completed)),
    )
    payload = {
        "progress": storyline_progress(member),
        "missions": [m.model_dump(mode="json") for m in get_available_crew_storyline_missions([member])],
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0
