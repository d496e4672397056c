"""Crew storyline steps (storylines.yaml) and the mission templates built from them."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StorylineMissionSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    difficulty: float = 2
    payout: float = 0
    heat: float = 1
    duration: float = 32
    description: str = "Run a precision op to strengthen loyalty."


class StorylineRewards(BaseModel):
    model_config = ConfigDict(frozen=True)

    loyalty: int = 0
    trait_boosts: dict[str, int] = Field(default_factory=dict)
    perk: Optional[str] = None


class StorylinePenalty(BaseModel):
    model_config = ConfigDict(frozen=True)

    loyalty: int = 0


class StorylineStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    loyalty_requirement: float = 0
    mission: StorylineMissionSpec = Field(default_factory=StorylineMissionSpec)
    rewards: StorylineRewards = Field(default_factory=StorylineRewards)
    failure_penalty: StorylinePenalty = Field(default_factory=StorylinePenalty)
    success_summary: str = ""
    failure_summary: str = ""


class StorylineRef(BaseModel):
    type: str = "crew-loyalty"
    crew_id: Optional[str] = None
    crew_name: str = "Crew member"
    background_id: str = "default"
    step_id: str


class StorylineMissionTemplate(BaseModel):
    id: str
    name: str
    difficulty: float
    payout: float
    heat: float
    duration: float
    description: str
    category: str = "crew-loyalty"
    ignore_crackdown_restrictions: bool = True
    storyline: StorylineRef


class StorylineOutcome(BaseModel):
    success: bool
    loyalty_delta: int = 0
    trait_boosts: dict[str, int] = Field(default_factory=dict)
    perk_awarded: Optional[str] = None
    summary: str = ""
