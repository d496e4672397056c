"""Safehouse defense snapshots returned to callers.

The defense manager stores scenarios as JSON-shaped dicts inside the game state;
these frozen models are the read-only copies handed back out.
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Zone(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    facility_ids: tuple[str, ...] = ()
    defense_score: int = 0
    ordinal: Optional[int] = None


class Layout(BaseModel):
    model_config = ConfigDict(frozen=True)

    safehouse_id: Optional[str] = None
    zones: tuple[Zone, ...] = ()
    zone_order: tuple[str, ...] = ()
    unassigned_facility_ids: tuple[str, ...] = ()
    assignments_by_facility: dict[str, str] = Field(default_factory=dict)
    source: Literal["heuristic", "custom"] = "heuristic"
    updated_at: Optional[int] = None


class EscalationTrack(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    value: int = 0
    max: int = 6
    status: Literal["active", "escalating", "stabilizing"] = "active"


class RecommendedAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    summary: Optional[str] = None


class ScenarioHistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    choice_id: Optional[str] = None
    summary: Optional[str] = None
    resolved_at: Optional[int] = None


class DefenseScenario(BaseModel):
    model_config = ConfigDict(frozen=True)

    alert_id: str
    safehouse_id: Optional[str] = None
    status: Literal["active", "cooldown"] = "active"
    heat_tier: Optional[str] = None
    cooldown_days: Optional[int] = None
    started_at: Optional[int] = None
    updated_at: Optional[int] = None
    resolved_at: Optional[int] = None
    last_choice_id: Optional[str] = None
    last_summary: Optional[str] = None
    layout: Optional[Layout] = None
    escalation_tracks: tuple[EscalationTrack, ...] = ()
    recommended_actions: tuple[RecommendedAction, ...] = ()
    history: tuple[ScenarioHistoryEntry, ...] = ()
