"""Crew loyalty storylines: next-step lookup, mission templates, and outcome application."""
from __future__ import annotations

import logging
from typing import Any, Iterable

from backend.app.content.loader import load_storylines
from backend.app.core.records import normalize_id, read_field, to_finite
from backend.app.models.storylines import (
    StorylineMissionTemplate,
    StorylineOutcome,
    StorylineRef,
    StorylineStep,
)
from backend.app.world.crew_effects import (
    adjust_member_loyalty,
    adjust_member_trait,
    award_member_perk,
    completed_story_steps,
    mark_member_story_step,
    member_trait,
)

logger = logging.getLogger(__name__)

DEFAULT_STORYLINE = "default"


def _background_id(member: Any) -> str:
    background = read_field(member, "background")
    raw = background if isinstance(background, str) else read_field(background, "id")
    background_id = normalize_id(raw)
    return background_id.lower() if background_id else DEFAULT_STORYLINE


def get_storyline_steps(member: Any) -> tuple[StorylineStep, ...]:
    """Steps for the member's background, or the default table for unknown backgrounds."""
    storylines = load_storylines()
    return storylines.get(_background_id(member)) or storylines[DEFAULT_STORYLINE]


def get_next_storyline_step(member: Any) -> StorylineStep | None:
    """First step, in table order, that is incomplete and whose loyalty requirement is met."""
    if not member:
        return None
    completed = set(completed_story_steps(member))
    loyalty = to_finite(read_field(member, "loyalty"), 0.0)
    for step in get_storyline_steps(member):
        if step.id in completed:
            continue
        if step.loyalty_requirement <= loyalty:
            return step
    return None


def storyline_progress(member: Any) -> dict[str, int]:
    steps = get_storyline_steps(member)
    completed = set(completed_story_steps(member))
    return {
        "completed": sum(1 for s in steps if s.id in completed),
        "total": len(steps),
    }


def _build_template(member: Any, crew_id: str, step: StorylineStep) -> StorylineMissionTemplate:
    name = read_field(member, "name")
    name = name.strip() if isinstance(name, str) and name.strip() else "Crew member"
    return StorylineMissionTemplate(
        id=f"loyalty-{crew_id}-{step.id}",
        name=f"{name}: {step.label}",
        difficulty=step.mission.difficulty,
        payout=step.mission.payout,
        heat=step.mission.heat,
        duration=step.mission.duration,
        description=step.mission.description,
        storyline=StorylineRef(
            crew_id=crew_id,
            crew_name=name,
            background_id=_background_id(member),
            step_id=step.id,
        ),
    )


def get_available_crew_storyline_missions(crew_members: Iterable[Any] | None) -> list[StorylineMissionTemplate]:
    """One loyalty mission per crew member with an eligible step; others contribute nothing."""
    templates: list[StorylineMissionTemplate] = []
    for member in crew_members or ():
        crew_id = normalize_id(read_field(member, "id"))
        if not crew_id:
            continue
        step = get_next_storyline_step(member)
        if step is None:
            continue
        templates.append(_build_template(member, crew_id, step))
    return templates


def apply_crew_storyline_outcome(member: Any, step_id: Any, outcome: Any) -> StorylineOutcome | None:
    """Apply a storyline mission result to the crew member.

    'success' grants the step's rewards and marks it complete. Anything else applies
    the failure penalty only and leaves the step open for a retry. Unknown step -> None.
    """
    if not member:
        return None
    step_id = normalize_id(step_id)
    step = next((s for s in get_storyline_steps(member) if s.id == step_id), None)
    if step is None:
        logger.debug("Unknown storyline step %s", step_id)
        return None

    success = isinstance(outcome, str) and outcome.strip().lower() == "success"
    if not success:
        penalty = int(round(step.failure_penalty.loyalty))
        if penalty:
            adjust_member_loyalty(member, penalty)
        logger.info("Storyline step %s failed (%s)", step.id, outcome)
        return StorylineOutcome(success=False, loyalty_delta=penalty, summary=step.failure_summary)

    rewards = step.rewards
    loyalty = int(round(rewards.loyalty))
    if loyalty:
        adjust_member_loyalty(member, loyalty)
    boosts: dict[str, int] = {}
    for trait_key, amount in rewards.trait_boosts.items():
        delta = int(round(amount))
        if not delta:
            continue
        before = member_trait(member, trait_key)
        adjust_member_trait(member, trait_key, delta)
        after = member_trait(member, trait_key)
        # hook-only records expose no scores; report what was asked for
        boosts[trait_key] = delta if before is None or after is None else after - before
    if rewards.perk:
        award_member_perk(member, rewards.perk)
    mark_member_story_step(member, step.id)
    logger.info("Storyline step %s completed", step.id)

    return StorylineOutcome(
        success=True,
        loyalty_delta=loyalty,
        trait_boosts=boosts,
        perk_awarded=rewards.perk,
        summary=step.success_summary,
    )
