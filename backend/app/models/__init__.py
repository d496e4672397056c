"""Application models (event definitions, defense snapshots, relationship views, crew)."""
from .crew import CrewMember
from .defense import DefenseScenario, EscalationTrack, Layout, RecommendedAction, Zone
from .events import (
    ChoiceEffects,
    EventBadge,
    EventChoice,
    EventDefinition,
    FacilityDowntime,
    IncursionBatch,
    IncursionEvent,
    MissionEventCandidate,
    MissionEventOutcome,
    PoiContext,
    SafehouseIncursionAlert,
)
from .relationships import RelationshipEventView, RelationshipResolution
from .storylines import StorylineMissionTemplate, StorylineOutcome, StorylineStep

__all__ = [
    "ChoiceEffects",
    "CrewMember",
    "DefenseScenario",
    "EscalationTrack",
    "EventBadge",
    "EventChoice",
    "EventDefinition",
    "FacilityDowntime",
    "IncursionBatch",
    "IncursionEvent",
    "Layout",
    "MissionEventCandidate",
    "MissionEventOutcome",
    "PoiContext",
    "RecommendedAction",
    "RelationshipEventView",
    "RelationshipResolution",
    "SafehouseIncursionAlert",
    "StorylineMissionTemplate",
    "StorylineOutcome",
    "StorylineStep",
    "Zone",
]
