"""Crew relationship event config (from relationship_events.yaml) and caller-facing views.

Pending events live in the game state as dicts that still carry choice effects;
RelationshipEventView is the UI-safe copy with effects stripped.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Table config ---


class RelationshipEffects(BaseModel):
    model_config = ConfigDict(frozen=True)

    loyalty_delta: Optional[int] = None
    affinity_delta: Optional[int] = None
    funds_delta: Optional[int] = None
    clear_band: bool = False
    trait_adjustments: dict[str, int] = Field(default_factory=dict)


class RelationshipChoiceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    description: str
    narrative: Optional[str] = None
    effects: RelationshipEffects = Field(default_factory=RelationshipEffects)
    # Arc follow-up steps: show only when the first step's choice matches / does not match
    when_first_choice: Optional[str] = None
    unless_first_choice: Optional[str] = None


class BandEventConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    cooldown_hours: float
    prompt: str
    prompt_with_mission: Optional[str] = None
    choices: tuple[RelationshipChoiceConfig, ...]


class ArcStepConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    prompt: str
    mission_suffix: str = ""  # appended as {mission_suffix} when a mission name is known
    default_suffix: str = ""
    choices: tuple[RelationshipChoiceConfig, ...]


class RelationshipArcConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    band: str
    label: str
    cooldown_hours: float
    steps: tuple[ArcStepConfig, ...]


class RelationshipTables(BaseModel):
    model_config = ConfigDict(frozen=True)

    bands: dict[str, BandEventConfig]
    arcs: tuple[RelationshipArcConfig, ...] = ()


# --- Caller-facing views ---


class MissionContextSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    mission_id: Optional[str] = None
    mission_name: Optional[str] = None
    outcome: Optional[str] = None


class RelationshipBadge(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    icon: str
    label: str


class ArcStepMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    arc_id: str
    arc_label: str
    step_id: str
    step_index: int
    step_count: int


class RelationshipChoiceView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    description: str


class RelationshipEventView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    band: str
    crew_ids: tuple[str, ...]
    crew_names: tuple[str, ...]
    prompt: str
    triggered_at: int
    cooldown_ms: int
    mission_context: Optional[MissionContextSnapshot] = None
    badges: tuple[RelationshipBadge, ...] = ()
    arc: Optional[ArcStepMeta] = None
    choices: tuple[RelationshipChoiceView, ...] = ()


class RelationshipResolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    event_type: str
    choice_id: str
    choice_label: str
    summary: str
    details: tuple[str, ...] = ()
    resolved_at: int
    prompt: str = ""
    arc: Optional[ArcStepMeta] = None
