"""Mission event deck: weighted, deterministic selection of mid-mission events.

Selection is a pure ranking (no sampling): every eligible event gets a weight from
its base weight and the band/risk/crackdown multipliers, the top N by weight are
kept, and the deck is handed back in playback order (trigger progress ascending).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from backend.app.constants import (
    CRACKDOWN_TIERS,
    DECK_SIZE_BY_BAND,
    DEFAULT_CRACKDOWN_TIER,
    DEFAULT_RISK_TIER,
    DIFFICULTY_BAND_HIGH_MIN,
    DIFFICULTY_BAND_MID_MIN,
    RISK_TIER_ALIASES,
    RISK_TIERS,
)
from backend.app.content.loader import load_mission_events
from backend.app.core.poi_events import build_poi_event
from backend.app.core.records import clamp, read_field, to_finite, write_field
from backend.app.models.events import (
    EventDefinition,
    MissionEventCandidate,
    MissionEventOutcome,
)

logger = logging.getLogger(__name__)

CRACKDOWN_FIELDS = ("crackdown_tier", "active_crackdown_tier", "crackdown_level")


@dataclass(frozen=True)
class DeckContext:
    difficulty: float
    difficulty_band: str
    risk_tier: Optional[str]  # None = unrecognized tier, no restriction
    crackdown_tier: Optional[str]


def _normalize_tier(value: Any, allowed: tuple[str, ...], default: str, aliases: dict[str, str]) -> str | None:
    if value is None:
        return default
    text = str(value).strip().lower()
    if not text:
        return default
    text = aliases.get(text, text)
    return text if text in allowed else None


def normalize_risk_tier(value: Any) -> str | None:
    """low | moderate | high; missing -> low; unknown -> None."""
    return _normalize_tier(value, RISK_TIERS, DEFAULT_RISK_TIER, RISK_TIER_ALIASES)


def normalize_crackdown_tier(value: Any) -> str | None:
    """calm | alert | lockdown; missing -> calm; unknown -> None."""
    return _normalize_tier(value, CRACKDOWN_TIERS, DEFAULT_CRACKDOWN_TIER, {})


def difficulty_band(difficulty: float) -> str:
    if difficulty >= DIFFICULTY_BAND_HIGH_MIN:
        return "high"
    if difficulty >= DIFFICULTY_BAND_MID_MIN:
        return "mid"
    return "low"


def deck_size_for(difficulty: float) -> int:
    return max(1, DECK_SIZE_BY_BAND[difficulty_band(difficulty)])


def build_deck_context(mission: Any) -> DeckContext:
    difficulty = to_finite(read_field(mission, "difficulty"), 1.0)
    return DeckContext(
        difficulty=difficulty,
        difficulty_band=difficulty_band(difficulty),
        risk_tier=normalize_risk_tier(read_field(mission, "risk_tier")),
        crackdown_tier=normalize_crackdown_tier(read_field(mission, *CRACKDOWN_FIELDS)),
    )


def _multiplier(weights: dict[str, float], key: str | None) -> float:
    if key is None or key not in weights:
        return 1.0
    return to_finite(weights[key], 1.0)


def evaluate_candidate(definition: EventDefinition, context: DeckContext) -> MissionEventCandidate | None:
    """Eligibility + weight for one event; None when filtered out or weight <= 0."""
    if context.difficulty < definition.min_difficulty:
        logger.debug("Event %s rejected: difficulty %.1f below min", definition.id, context.difficulty)
        return None
    if definition.max_difficulty is not None and context.difficulty > definition.max_difficulty:
        logger.debug("Event %s rejected: difficulty %.1f above max", definition.id, context.difficulty)
        return None
    if definition.risk_tiers is not None and context.risk_tier is not None:
        if context.risk_tier not in definition.risk_tiers:
            logger.debug("Event %s rejected: risk tier %s", definition.id, context.risk_tier)
            return None
    if definition.crackdown_tiers is not None and context.crackdown_tier is not None:
        if context.crackdown_tier not in definition.crackdown_tiers:
            logger.debug("Event %s rejected: crackdown tier %s", definition.id, context.crackdown_tier)
            return None

    weight = (
        definition.base_weight
        * _multiplier(definition.difficulty_band_weights, context.difficulty_band)
        * _multiplier(definition.risk_tier_weights, context.risk_tier)
        * _multiplier(definition.crackdown_tier_weights, context.crackdown_tier)
    )
    weight = max(0.0, weight)
    if weight <= 0:
        logger.debug("Event %s rejected: zero weight", definition.id)
        return None

    return MissionEventCandidate(
        event=definition.model_copy(deep=True),
        selection_weight=weight,
        applied_difficulty_band=context.difficulty_band,
        applied_risk_tier=context.risk_tier,
        applied_crackdown_tier=context.crackdown_tier,
    )


def build_mission_event_deck(
    mission: Any,
    extra_events: Iterable[EventDefinition] | None = None,
) -> list[MissionEventCandidate]:
    """Build the ordered event deck for one mission run.

    Args:
        mission: Mission record (dict or object) with difficulty, risk_tier, a crackdown
            tier field and an optional point_of_interest.
        extra_events: Additional definitions (e.g. safehouse incursion events) that
            compete through the same eligibility and weighting.

    Returns:
        Candidates in playback order; empty when nothing is eligible.
    """
    context = build_deck_context(mission)

    definitions: list[EventDefinition] = list(load_mission_events())
    poi_event = build_poi_event(read_field(mission, "point_of_interest"))
    if poi_event is not None:
        definitions.append(poi_event)
    if extra_events:
        definitions.extend(e for e in extra_events if isinstance(e, EventDefinition))

    candidates = [c for c in (evaluate_candidate(d, context) for d in definitions) if c is not None]
    if not candidates:
        logger.debug("No eligible mission events (difficulty=%.1f)", context.difficulty)
        return []

    # sorted() is stable, so equal weight and progress keep table order
    ranked = sorted(candidates, key=lambda c: (-c.selection_weight, -c.trigger_progress))
    selected = ranked[: deck_size_for(context.difficulty)]
    return sorted(selected, key=lambda c: (c.trigger_progress, -c.selection_weight))


def advance_event_deck(deck: Iterable[MissionEventCandidate], progress: float) -> list[MissionEventCandidate]:
    """Mark and return candidates whose trigger point has been reached."""
    reached = clamp(to_finite(progress, 0.0), 0.0, 1.0)
    fired: list[MissionEventCandidate] = []
    for candidate in deck:
        if candidate.triggered or candidate.trigger_progress > reached:
            continue
        candidate.triggered = True
        fired.append(candidate)
    return fired


def _apply(value: float, multiplier: float | None, delta: float | None) -> float:
    if multiplier is not None:
        value *= to_finite(multiplier, 1.0)
    if delta is not None:
        value += to_finite(delta, 0.0)
    return value


def resolve_mission_event(
    mission: Any,
    candidate: MissionEventCandidate,
    choice_id: str,
) -> MissionEventOutcome | None:
    """Apply a choice's effects to the mission numbers and mark the candidate resolved.

    Payout and heat floor at 0, duration at 1, success chance clamps to 0..1.
    Returns None for an unknown choice or an already-resolved candidate.
    """
    if candidate is None or candidate.resolved:
        return None
    choice = candidate.event.get_choice(choice_id)
    if choice is None:
        logger.debug("Unknown choice %s for event %s", choice_id, candidate.id)
        return None
    effects = choice.effects

    payout_before = to_finite(read_field(mission, "payout"), 0.0)
    heat_before = to_finite(read_field(mission, "heat"), 0.0)
    duration_before = to_finite(read_field(mission, "duration"), 1.0)
    raw_success = read_field(mission, "success_chance")
    success_before = to_finite(raw_success, 0.0) if raw_success is not None else None

    payout_after = max(0.0, _apply(payout_before, effects.payout_multiplier, effects.payout_delta))
    heat_after = max(0.0, _apply(heat_before, effects.heat_multiplier, effects.heat_delta))
    duration_after = max(1.0, _apply(duration_before, effects.duration_multiplier, effects.duration_delta))

    write_field(mission, "payout", payout_after)
    write_field(mission, "heat", heat_after)
    write_field(mission, "duration", duration_after)

    success_after = None
    if success_before is not None:
        success_after = clamp(success_before + to_finite(effects.success_delta, 0.0), 0.0, 1.0)
        write_field(mission, "success_chance", success_after)

    candidate.triggered = True
    candidate.resolved = True
    candidate.resolved_choice_id = choice.id
    logger.info("Resolved mission event %s with %s", candidate.id, choice.id)

    return MissionEventOutcome(
        event_id=candidate.id,
        choice_id=choice.id,
        narrative=choice.narrative,
        payout_before=payout_before,
        payout_after=payout_after,
        heat_before=heat_before,
        heat_after=heat_after,
        duration_before=duration_before,
        duration_after=duration_after,
        success_before=success_before,
        success_after=success_after,
        crew_loyalty_delta=int(round(to_finite(effects.crew_loyalty_delta, 0.0))),
        future_debt=effects.future_debt,
        facility_downtime=effects.facility_downtime,
        safehouse_alert_id=getattr(candidate.event, "safehouse_alert_id", None),
    )
