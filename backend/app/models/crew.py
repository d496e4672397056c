"""Concrete crew member record implementing the optional adjustment hooks."""
from __future__ import annotations

import math
from typing import Any, Optional

from pydantic import BaseModel, Field

from backend.app.constants import (
    CREW_AFFINITY_MAX,
    CREW_AFFINITY_MIN,
    CREW_LOYALTY_MAX,
    CREW_LOYALTY_MIN,
    CREW_TRAIT_KEYS,
    CREW_TRAIT_MAX,
)


class CrewBackground(BaseModel):
    id: str = "default"
    name: Optional[str] = None
    perk_label: Optional[str] = None


class StoryProgress(BaseModel):
    completed_steps: list[str] = Field(default_factory=list)


def _finite_delta(amount: Any) -> float | None:
    try:
        delta = float(amount)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(delta) or delta == 0:
        return None
    return delta


class CrewMember(BaseModel):
    id: str
    name: str = "Crew member"
    loyalty: int = 0
    traits: dict[str, int] = Field(default_factory=dict)
    perks: list[str] = Field(default_factory=list)
    affinity: dict[str, int] = Field(default_factory=dict)
    background: CrewBackground = Field(default_factory=CrewBackground)
    story_progress: StoryProgress = Field(default_factory=StoryProgress)

    def adjust_loyalty(self, amount: Any) -> None:
        delta = _finite_delta(amount)
        if delta is None:
            return
        self.loyalty = int(max(CREW_LOYALTY_MIN, min(CREW_LOYALTY_MAX, round(self.loyalty + delta))))

    def adjust_affinity_for_crewmate(self, peer_id: Any, amount: Any) -> None:
        delta = _finite_delta(amount)
        if delta is None or peer_id is None:
            return
        key = str(peer_id)
        current = self.affinity.get(key, 0)
        self.affinity[key] = int(max(CREW_AFFINITY_MIN, min(CREW_AFFINITY_MAX, round(current + delta))))

    def adjust_trait(self, trait_key: str, amount: Any = 1) -> None:
        if trait_key not in CREW_TRAIT_KEYS:
            return
        delta = _finite_delta(amount)
        if delta is None:
            return
        current = self.traits.get(trait_key, 0)
        self.traits[trait_key] = int(round(max(0, min(CREW_TRAIT_MAX, current + delta))))

    def add_perk(self, perk: Any) -> list[str]:
        if perk and str(perk) not in self.perks:
            self.perks.append(str(perk))
        return list(self.perks)

    def get_completed_story_steps(self) -> list[str]:
        return list(self.story_progress.completed_steps)

    def mark_story_step_complete(self, step_id: Any) -> list[str]:
        if step_id and str(step_id) not in self.story_progress.completed_steps:
            self.story_progress.completed_steps.append(str(step_id))
        return self.get_completed_story_steps()
