"""Centralized tuning constants shared across the engine."""
from __future__ import annotations

# Tier vocabularies
RISK_TIERS: tuple[str, ...] = ("low", "moderate", "high")
CRACKDOWN_TIERS: tuple[str, ...] = ("calm", "alert", "lockdown")
RISK_TIER_ALIASES: dict[str, str] = {"medium": "moderate", "mid": "moderate"}
DEFAULT_RISK_TIER = "low"
DEFAULT_CRACKDOWN_TIER = "calm"

# Mission event deck
DIFFICULTY_BAND_HIGH_MIN = 5
DIFFICULTY_BAND_MID_MIN = 3
DECK_SIZE_BY_BAND: dict[str, int] = {"low": 3, "mid": 4, "high": 5}
DEFAULT_TRIGGER_PROGRESS = 0.5

# Relationship events
RELATIONSHIP_BANDS: tuple[str, ...] = ("synergy", "strain", "neutral")
RELATIONSHIP_PENDING_CAP = 8
RELATIONSHIP_HISTORY_CAP = 12
RELATIONSHIP_ARC_HISTORY_CAP = 16
RELATIONSHIP_TEAM_ARC_HISTORY_CAP = 8
RELATIONSHIP_ARC_STEP_HISTORY_CAP = 6

# Safehouse defense
DEFENSE_SCENARIO_HISTORY_CAP = 6
DEFENSE_GLOBAL_HISTORY_CAP = 20
DEFENSE_RECOMMENDED_ACTIONS_CAP = 3
DEFENSE_COOLDOWN_DAYS_MAX = 30
ZONE_SCORE_MIN = 0
ZONE_SCORE_MAX = 20
ZONE_ORDINAL_MIN = 0
ZONE_ORDINAL_MAX = 50
UNASSIGNED_ZONE_ID = "unassigned"
FALLBACK_ZONE_ID = "support"
ESCALATION_TRACK_DEFAULT_MAX = 6
ESCALATION_BASE_PRESSURE = 1
HEAT_TIER_ESCALATION: dict[str, int] = {"lockdown": 2, "alert": 1, "calm": 0}

# Crew records
CREW_LOYALTY_MIN = 0
CREW_LOYALTY_MAX = 5
CREW_AFFINITY_MIN = -100
CREW_AFFINITY_MAX = 100
CREW_TRAIT_MAX = 6
CREW_TRAIT_KEYS: tuple[str, ...] = ("stealth", "tech", "driving", "tactics", "charisma", "muscle")
