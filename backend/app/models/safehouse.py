"""Safehouse facility effects, incursion profiles, and downtime records."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.models.events import EventChoice


class FacilityEffect(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    summary: str = ""
    passive_income_bonus: float = 0
    overhead_modifier_bonus: float = 0
    daily_heat_reduction_bonus: float = 0
    crew_rest_bonus: float = 0


class FacilityBonuses(BaseModel):
    passive_income_bonus: float = 0
    overhead_modifier_bonus: float = 0
    daily_heat_reduction_bonus: float = 0
    crew_rest_bonus: float = 0
    active_facility_ids: list[str] = Field(default_factory=list)
    disabled_facility_ids: list[str] = Field(default_factory=list)


class IncursionProfile(BaseModel):
    """One alert profile. Text fields are str.format templates over
    facility_id, facility_name, safehouse_label and heat_tier."""
    model_config = ConfigDict(frozen=True)

    alert_id: str
    label: str
    facility_ids: tuple[str, ...] = ()
    heat_tiers: tuple[str, ...] = ()
    badge_icon: str = "🏗️"
    base_weight: float = 1.15
    trigger_progress: float = 0.32
    min_difficulty: float = 1
    max_difficulty: Optional[float] = 6
    cooldown_days: int = 2
    description: str = ""
    alert_summary: str = ""
    choices: tuple[EventChoice, ...] = ()


class IncursionTables(BaseModel):
    model_config = ConfigDict(frozen=True)

    facility_profiles: tuple[IncursionProfile, ...] = ()
    heat_profiles: tuple[IncursionProfile, ...] = ()


class DowntimeRecord(BaseModel):
    """Stored under state['facility_downtimes'][safehouse_id][facility_id]."""
    facility_id: str
    alert_id: Optional[str] = None
    summary: Optional[str] = None
    penalties: list[str] = Field(default_factory=list)
    duration_days: int = 0
    started_on_day: Optional[int] = None
    ends_on_day: Optional[int] = None
