"""Pydantic models for mission events, choices, and safehouse incursion alerts.

Definitions loaded from tables are frozen; anything that carries runtime state
(candidates in a deck) is a separate mutable model that wraps a deep copy.
"""
from __future__ import annotations

import math
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.constants import DEFAULT_TRIGGER_PROGRESS


class FacilityDowntime(BaseModel):
    """Temporary loss of a safehouse facility's passive bonuses."""
    model_config = ConfigDict(frozen=True)

    facility_id: Optional[str] = None
    duration_days: int = 1
    summary: str = ""
    penalties: tuple[str, ...] = ()

    @field_validator("duration_days", mode="before")
    @classmethod
    def _non_negative_days(cls, value: Any) -> int:
        try:
            days = float(value)
        except (TypeError, ValueError):
            return 1
        if not math.isfinite(days):
            return 1
        return max(0, int(round(days)))


class ChoiceEffects(BaseModel):
    """Consequences of picking a choice; every field is optional."""
    model_config = ConfigDict(frozen=True)

    payout_multiplier: Optional[float] = None
    payout_delta: Optional[float] = None
    heat_multiplier: Optional[float] = None
    heat_delta: Optional[float] = None
    duration_multiplier: Optional[float] = None
    duration_delta: Optional[float] = None
    success_delta: Optional[float] = None
    crew_loyalty_delta: Optional[int] = None
    future_debt: bool = False
    clear_band: bool = False
    facility_downtime: Optional[FacilityDowntime] = None


class EventChoice(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    description: str = ""
    narrative: str = ""
    effects: ChoiceEffects = Field(default_factory=ChoiceEffects)


class EventBadge(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    icon: str = ""
    label: str


class PoiContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None


class EventDefinition(BaseModel):
    """Static, table-driven mission event."""
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    description: str = ""
    trigger_progress: float = DEFAULT_TRIGGER_PROGRESS  # 0..1 along the mission timeline
    min_difficulty: float = 0
    max_difficulty: Optional[float] = None  # None = no upper bound
    risk_tiers: Optional[tuple[str, ...]] = None  # None = any risk tier
    crackdown_tiers: Optional[tuple[str, ...]] = None  # None = any crackdown tier
    base_weight: float = 1.0
    difficulty_band_weights: dict[str, float] = Field(default_factory=dict)  # low | mid | high
    risk_tier_weights: dict[str, float] = Field(default_factory=dict)
    crackdown_tier_weights: dict[str, float] = Field(default_factory=dict)
    choices: tuple[EventChoice, ...] = ()
    poi_context: Optional[PoiContext] = None
    badges: tuple[EventBadge, ...] = ()

    @field_validator("trigger_progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> float:
        try:
            progress = float(value)
        except (TypeError, ValueError):
            return DEFAULT_TRIGGER_PROGRESS
        if not math.isfinite(progress):
            return DEFAULT_TRIGGER_PROGRESS
        return max(0.0, min(1.0, progress))

    @field_validator("base_weight", mode="before")
    @classmethod
    def _floor_weight(cls, value: Any) -> float:
        try:
            weight = float(value)
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(weight):
            return 0.0
        return max(0.0, weight)

    @field_validator("risk_tiers", "crackdown_tiers", mode="before")
    @classmethod
    def _lower_tiers(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        return tuple(str(v).strip().lower() for v in value if v is not None and str(v).strip())

    def get_choice(self, choice_id: str | None) -> EventChoice | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


class IncursionEvent(EventDefinition):
    """Mission-style event synthesized from a safehouse incursion alert."""
    safehouse_alert_id: str
    safehouse_alert_cooldown_days: int = 1
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    heat_tier: Optional[str] = None
    source: str = "safehouse-incursion"


class MissionEventCandidate(BaseModel):
    """A deep-cloned definition plus the selection bookkeeping for one mission run."""

    event: EventDefinition
    selection_weight: float
    applied_difficulty_band: str
    applied_risk_tier: Optional[str] = None
    applied_crackdown_tier: Optional[str] = None
    triggered: bool = False
    resolved: bool = False
    resolved_choice_id: Optional[str] = None

    @property
    def id(self) -> str:
        return self.event.id

    @property
    def label(self) -> str:
        return self.event.label

    @property
    def trigger_progress(self) -> float:
        return self.event.trigger_progress

    @property
    def choices(self) -> tuple[EventChoice, ...]:
        return self.event.choices


class MissionEventOutcome(BaseModel):
    """What changed on the mission after a choice was applied."""
    event_id: str
    choice_id: str
    narrative: str = ""
    payout_before: float = 0
    payout_after: float = 0
    heat_before: float = 0
    heat_after: float = 0
    duration_before: float = 0
    duration_after: float = 0
    success_before: Optional[float] = None
    success_after: Optional[float] = None
    crew_loyalty_delta: int = 0
    future_debt: bool = False
    facility_downtime: Optional[FacilityDowntime] = None
    safehouse_alert_id: Optional[str] = None


class SafehouseIncursionAlert(BaseModel):
    id: str
    label: str
    summary: str
    status: Literal["alert", "cooldown"] = "alert"
    severity: Literal["warning", "critical"] = "warning"
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None
    heat_tier: Optional[str] = None
    safehouse_id: Optional[str] = None
    safehouse_label: str = "Safehouse"
    cooldown_days: int = 1
    triggered_at: int = 0  # epoch ms


class IncursionBatch(BaseModel):
    """Events and alerts generated by one incursion check; empty lists when nothing fired."""
    events: list[IncursionEvent] = Field(default_factory=list)
    alerts: list[SafehouseIncursionAlert] = Field(default_factory=list)
