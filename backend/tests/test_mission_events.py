"""Tests for the mission event deck: eligibility, weighting, ordering, and consequences."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from backend.app.core.mission_events import (
    DeckContext,
    advance_event_deck,
    build_deck_context,
    build_mission_event_deck,
    deck_size_for,
    evaluate_candidate,
    normalize_crackdown_tier,
    normalize_risk_tier,
    resolve_mission_event,
)
from backend.app.models.events import EventDefinition


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

HIGH_ALERT_MISSION = {"difficulty": 4, "risk_tier": "high", "crackdown_tier": "alert"}
CALM_MISSION = {"difficulty": 1, "risk_tier": "low", "crackdown_tier": "calm"}


def _ids(deck):
    return [c.id for c in deck]


# ---------------------------------------------------------------------------
# Tier normalization
# ---------------------------------------------------------------------------


class TestNormalization:
    @pytest.mark.parametrize(
        "raw, expected",
        [(None, "low"), ("", "low"), ("HIGH", "high"), ("medium", "moderate"), (" Moderate ", "moderate"), ("extreme", None)],
    )
    def test_risk_tier(self, raw, expected):
        assert normalize_risk_tier(raw) == expected

    @pytest.mark.parametrize(
        "raw, expected",
        [(None, "calm"), ("Lockdown", "lockdown"), ("alert", "alert"), ("martial-law", None)],
    )
    def test_crackdown_tier(self, raw, expected):
        assert normalize_crackdown_tier(raw) == expected

    def test_crackdown_tier_read_from_alias_fields(self):
        ctx = build_deck_context({"difficulty": 2, "active_crackdown_tier": "lockdown"})
        assert ctx.crackdown_tier == "lockdown"
        ctx = build_deck_context({"difficulty": 2, "crackdown_level": "alert"})
        assert ctx.crackdown_tier == "alert"

    @pytest.mark.parametrize("difficulty", [None, "abc", float("nan"), float("inf")])
    def test_non_finite_difficulty_defaults_to_one(self, difficulty):
        ctx = build_deck_context({"difficulty": difficulty})
        assert ctx.difficulty == 1.0
        assert ctx.difficulty_band == "low"

    def test_object_mission_records(self):
        mission = SimpleNamespace(difficulty=5, risk_tier="high", crackdown_tier="lockdown")
        ctx = build_deck_context(mission)
        assert ctx == DeckContext(5.0, "high", "high", "lockdown")


# ---------------------------------------------------------------------------
# Deck building
# ---------------------------------------------------------------------------


class TestBuildDeck:
    def test_high_risk_alert_example(self):
        deck = build_mission_event_deck(HIGH_ALERT_MISSION)
        assert len(deck) == 4
        assert "armored-response" in _ids(deck)
        assert "exit-ambush" in _ids(deck)
        assert _ids(deck) == ["security-sweep", "vault-cache", "armored-response", "exit-ambush"]

    def test_weights_and_applied_context(self):
        deck = {c.id: c for c in build_mission_event_deck(HIGH_ALERT_MISSION)}
        assert deck["exit-ambush"].selection_weight == pytest.approx(1.43)
        assert deck["security-sweep"].selection_weight == pytest.approx(1.32)
        assert deck["armored-response"].selection_weight == pytest.approx(1.1)
        assert deck["vault-cache"].selection_weight == pytest.approx(1.08)
        sample = deck["exit-ambush"]
        assert sample.applied_difficulty_band == "mid"
        assert sample.applied_risk_tier == "high"
        assert sample.applied_crackdown_tier == "alert"
        assert not sample.triggered and not sample.resolved

    def test_calm_low_risk_deck(self):
        deck = build_mission_event_deck(CALM_MISSION)
        assert _ids(deck) == ["informant-tip", "security-sweep", "street-festival"]

    def test_lockdown_high_difficulty_deck_fills_to_five(self):
        deck = build_mission_event_deck({"difficulty": 6, "risk_tier": "high", "crackdown_tier": "lockdown"})
        assert len(deck) == 5
        assert set(_ids(deck)) == {"exit-ambush", "security-sweep", "armored-response", "tracker-plant", "drone-overwatch"}

    def test_determinism(self):
        first = build_mission_event_deck(HIGH_ALERT_MISSION)
        second = build_mission_event_deck(dict(HIGH_ALERT_MISSION))
        assert [c.model_dump() for c in first] == [c.model_dump() for c in second]

    @pytest.mark.parametrize("difficulty, bound", [(1, 3), (2, 3), (3, 4), (4, 4), (5, 5), (6, 5)])
    def test_deck_size_bound(self, difficulty, bound):
        for risk in ("low", "moderate", "high"):
            for crackdown in ("calm", "alert", "lockdown"):
                deck = build_mission_event_deck({"difficulty": difficulty, "risk_tier": risk, "crackdown_tier": crackdown})
                assert len(deck) <= bound
        assert deck_size_for(difficulty) == bound

    @pytest.mark.parametrize("difficulty", [1, 2, 3, 4, 5, 6])
    def test_playback_order_non_decreasing(self, difficulty):
        deck = build_mission_event_deck({"difficulty": difficulty, "risk_tier": "high", "crackdown_tier": "alert"})
        progress = [c.trigger_progress for c in deck]
        assert progress == sorted(progress)

    def test_min_difficulty_filter(self):
        for risk in ("low", "moderate", "high"):
            for crackdown in ("calm", "alert", "lockdown"):
                deck = build_mission_event_deck({"difficulty": 2, "risk_tier": risk, "crackdown_tier": crackdown})
                assert "armored-response" not in _ids(deck)
                assert "tracker-plant" not in _ids(deck)

    def test_unknown_risk_tier_means_no_restriction(self):
        deck = build_mission_event_deck({"difficulty": 1, "risk_tier": "extreme", "crackdown_tier": "calm"})
        # exit-ambush is moderate/high only, but an unknown tier does not filter
        assert "exit-ambush" in _ids(deck)

    def test_empty_deck_when_nothing_eligible(self, monkeypatch):
        monkeypatch.setattr("backend.app.core.mission_events.load_mission_events", lambda: ())
        assert build_mission_event_deck(CALM_MISSION) == []

    def test_candidates_are_deep_copies(self):
        deck = build_mission_event_deck(CALM_MISSION)
        deck[0].triggered = True
        again = build_mission_event_deck(CALM_MISSION)
        assert not again[0].triggered


class TestPointOfInterest:
    def test_poi_event_competes_in_deck(self):
        mission = {
            "difficulty": 4,
            "risk_tier": "moderate",
            "crackdown_tier": "calm",
            "point_of_interest": {"id": "gold-vault", "name": "Gold Vault", "type": "vault"},
        }
        deck = build_mission_event_deck(mission)
        assert "poi-gold-vault-failsafe" in _ids(deck)
        poi = next(c for c in deck if c.id == "poi-gold-vault-failsafe")
        assert poi.event.poi_context.name == "Gold Vault"

    def test_untyped_poi_is_ignored(self):
        mission = {**CALM_MISSION, "point_of_interest": {"id": "x", "name": "Nowhere"}}
        assert _ids(build_mission_event_deck(mission)) == _ids(build_mission_event_deck(CALM_MISSION))


class TestEvaluateCandidate:
    def _definition(self, **overrides):
        data = {"id": "street-sweep", "label": "Street Sweep", "choices": [{"id": "a", "label": "A"}]}
        data.update(overrides)
        return EventDefinition.model_validate(data)

    def test_negative_weight_is_discarded(self):
        ctx = build_deck_context(CALM_MISSION)
        assert evaluate_candidate(self._definition(base_weight=-2), ctx) is None

    def test_zero_multiplier_is_discarded(self):
        ctx = build_deck_context(CALM_MISSION)
        assert evaluate_candidate(self._definition(crackdown_tier_weights={"calm": 0}), ctx) is None

    def test_max_difficulty(self):
        ctx = build_deck_context({"difficulty": 5})
        assert evaluate_candidate(self._definition(max_difficulty=4), ctx) is None
        assert evaluate_candidate(self._definition(max_difficulty=5), ctx) is not None

    def test_non_finite_trigger_progress_defaults(self):
        assert self._definition(trigger_progress=float("nan")).trigger_progress == 0.5
        assert self._definition(trigger_progress=3).trigger_progress == 1.0


# ---------------------------------------------------------------------------
# Playback and consequences
# ---------------------------------------------------------------------------


class TestPlayback:
    def test_advance_marks_reached_events_once(self):
        deck = build_mission_event_deck(HIGH_ALERT_MISSION)
        fired = advance_event_deck(deck, 0.6)
        assert _ids(fired) == ["security-sweep", "vault-cache"]
        assert advance_event_deck(deck, 0.6) == []
        assert _ids(advance_event_deck(deck, 5)) == ["armored-response", "exit-ambush"]

    def test_resolve_applies_effects(self):
        mission = {**HIGH_ALERT_MISSION, "payout": 10_000, "heat": 2, "duration": 40, "success_chance": 0.6}
        deck = build_mission_event_deck(mission)
        vault = next(c for c in deck if c.id == "vault-cache")
        outcome = resolve_mission_event(mission, vault, "vault-cache-grab")
        assert outcome is not None
        assert mission["payout"] == pytest.approx(12_000)
        assert mission["heat"] == pytest.approx(3)
        assert mission["duration"] == pytest.approx(42)
        assert mission["success_chance"] == pytest.approx(0.57)
        assert outcome.payout_before == 10_000
        assert vault.resolved and vault.resolved_choice_id == "vault-cache-grab"

    def test_resolve_floors_and_clamps(self):
        mission = SimpleNamespace(difficulty=1, risk_tier="low", crackdown_tier="calm",
                                  payout=300, heat=0.2, duration=1, success_chance=0.98)
        tip = next(c for c in build_mission_event_deck(mission) if c.id == "informant-tip")
        outcome = resolve_mission_event(mission, tip, "informant-tip-buy")
        assert mission.payout == 0
        assert mission.heat == 0
        assert mission.success_chance == 1.0
        assert outcome.success_after == 1.0

    def test_future_debt_and_loyalty_flags(self):
        mission = dict(HIGH_ALERT_MISSION)
        ambush = next(c for c in build_mission_event_deck(mission) if c.id == "exit-ambush")
        outcome = resolve_mission_event(mission, ambush, "exit-ambush-favors")
        assert outcome.crew_loyalty_delta == -1
        assert outcome.success_before is None and outcome.success_after is None
        assert "success_chance" not in mission

    def test_unknown_choice_and_double_resolution(self):
        mission = dict(CALM_MISSION)
        candidate = build_mission_event_deck(mission)[0]
        assert resolve_mission_event(mission, candidate, "nope") is None
        choice_id = candidate.choices[0].id
        assert resolve_mission_event(mission, candidate, choice_id) is not None
        assert resolve_mission_event(mission, candidate, choice_id) is None
