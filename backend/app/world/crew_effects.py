"""Crew member mutations with hook-or-field fallback.

Crew records may be CrewMember models, arbitrary objects, or plain dicts. Each
helper calls the record's hook when it has one and otherwise edits the field
directly with the same clamping the hook would apply.
"""
from __future__ import annotations

from typing import Any

from backend.app.constants import (
    CREW_AFFINITY_MAX,
    CREW_AFFINITY_MIN,
    CREW_LOYALTY_MAX,
    CREW_LOYALTY_MIN,
)
from backend.app.core.records import clamp, get_hook, read_field, to_finite, write_field


def _is_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float))


def adjust_member_loyalty(member: Any, delta: int) -> None:
    hook = get_hook(member, "adjust_loyalty")
    if hook is not None:
        hook(delta)
        return
    current = read_field(member, "loyalty")
    if not _is_number(current):
        return
    write_field(member, "loyalty", int(clamp(round(current + delta), CREW_LOYALTY_MIN, CREW_LOYALTY_MAX)))


def adjust_member_affinity(member: Any, peer_id: str | None, delta: int) -> None:
    if not peer_id:
        return
    hook = get_hook(member, "adjust_affinity_for_crewmate")
    if hook is not None:
        hook(peer_id, delta)
        return
    affinity = read_field(member, "affinity")
    if not isinstance(affinity, dict):
        affinity = {}
        write_field(member, "affinity", affinity)
    current = to_finite(affinity.get(peer_id), 0.0)
    affinity[peer_id] = int(clamp(round(current + delta), CREW_AFFINITY_MIN, CREW_AFFINITY_MAX))


def member_trait(member: Any, trait_key: str) -> int | None:
    """Current trait score, or None when the record keeps no readable traits."""
    traits = read_field(member, "traits")
    if not isinstance(traits, dict):
        return None
    return int(round(to_finite(traits.get(trait_key), 0.0)))


def adjust_member_trait(member: Any, trait_key: str, delta: int) -> None:
    hook = get_hook(member, "adjust_trait")
    if hook is not None:
        hook(trait_key, delta)
        return
    traits = read_field(member, "traits")
    if not isinstance(traits, dict):
        traits = {}
        write_field(member, "traits", traits)
    traits[trait_key] = int(max(0, round(to_finite(traits.get(trait_key), 0.0) + delta)))


def award_member_perk(member: Any, perk: str) -> None:
    hook = get_hook(member, "add_perk")
    if hook is not None:
        hook(perk)
        return
    perks = read_field(member, "perks")
    if not isinstance(perks, list):
        perks = []
        write_field(member, "perks", perks)
    if perk not in perks:
        perks.append(perk)


def completed_story_steps(member: Any) -> list[str]:
    hook = get_hook(member, "get_completed_story_steps")
    steps = hook() if hook is not None else read_field(read_field(member, "story_progress"), "completed_steps")
    if not isinstance(steps, (list, tuple, set)):
        return []
    return [str(s) for s in steps if s]


def mark_member_story_step(member: Any, step_id: str) -> None:
    hook = get_hook(member, "mark_story_step_complete")
    if hook is not None:
        hook(step_id)
        return
    progress = read_field(member, "story_progress")
    if progress is None:
        progress = {"completed_steps": []}
        write_field(member, "story_progress", progress)
    steps = read_field(progress, "completed_steps")
    if not isinstance(steps, list):
        steps = []
        write_field(progress, "completed_steps", steps)
    if step_id not in steps:
        steps.append(step_id)
