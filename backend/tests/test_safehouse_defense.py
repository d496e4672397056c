"""Tests for safehouse defense layouts, escalation tracks, and the scenario lifecycle."""
from __future__ import annotations

import logging
from collections import Counter

import pytest
from pydantic import ValidationError

from backend.app.core.safehouse_defense import (
    DEFENSE_STATE_KEY,
    build_escalation_tracks,
    build_layout,
    build_recommended_actions,
    build_scenario_summary_lines,
    classify_facility_zone,
    create_safehouse_defense_manager,
)
from backend.app.models.defense import EscalationTrack, Layout

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

FACILITIES = ["ops-briefing-theater", "dead-drop-network", "rapid-response-shed", "crash-cots"]
SAFEHOUSE = {"id": "sh-1", "name": "Low Rise", "unlocked_amenities": FACILITIES[:2], "active_projects": FACILITIES[2:]}
ALERT = {"id": "safehouse-dead-drop-compromise", "cooldown_days": 2}

GARBAGE_LAYOUTS = [
    None,
    "nope",
    42,
    [],
    {},
    {"zones": "x", "assignments_by_facility": [1, 2], "zone_order": 5, "unassigned_facility_ids": {"a": 1}},
    {"zones": [None, {"id": 3}, {"id": "  "}, {"label": "No id"}], "unassigned_facility_ids": [None, 7]},
    {"assignments_by_facility": {"crash-cots": None, "": "security", "dead-drop-network": "  "}},
    {"zones": [{"id": "security", "facility_ids": ["crash-cots", "crash-cots"]}], "unassigned_facility_ids": ["crash-cots"]},
    {"source": "custom", "updated_at": "yesterday", "zones": [{"id": "unassigned", "facility_ids": FACILITIES}]},
]


def _assert_partition(layout: Layout, facility_ids: list[str]) -> None:
    placed = [f for zone in layout.zones for f in zone.facility_ids] + list(layout.unassigned_facility_ids)
    assert Counter(placed) == Counter(set(facility_ids))
    zone_ids = [z.id for z in layout.zones]
    assert len(zone_ids) == len(set(zone_ids))
    assert sorted(layout.zone_order) == sorted(zone_ids)


# ---------------------------------------------------------------------------
# Layout reconciliation
# ---------------------------------------------------------------------------


class TestBuildLayout:
    @pytest.mark.parametrize(
        "facility_id, zone",
        [
            ("ops-briefing-theater", "operations"),
            ("ghost-terminal", "operations"),
            ("executive-war-room", "support"),
            ("dead-drop-network", "logistics"),
            ("quiet-network", "logistics"),
            ("rapid-response-shed", "security"),
            ("crash-cots", "support"),
        ],
    )
    def test_keyword_heuristic(self, facility_id, zone):
        assert classify_facility_zone(facility_id) == zone

    def test_heuristic_layout(self):
        layout = build_layout(SAFEHOUSE, now=1234)
        assert layout.source == "heuristic"
        assert layout.updated_at == 1234
        assert layout.safehouse_id == "sh-1"
        # no saved layout: alphabetical by label
        assert layout.zone_order == ("logistics", "operations", "security", "support")
        assert layout.assignments_by_facility == {
            "ops-briefing-theater": "operations",
            "dead-drop-network": "logistics",
            "rapid-response-shed": "security",
            "crash-cots": "support",
        }
        assert all(z.defense_score == 1 for z in layout.zones)
        assert layout.unassigned_facility_ids == ()
        _assert_partition(layout, FACILITIES)

    def test_custom_layout_is_honoured(self):
        saved = {
            "source": "custom",
            "updated_at": 123,
            "assignments_by_facility": {"crash-cots": "vault-room"},
            "zones": [{"id": "vault-room", "label": "Vault Room", "defense_score": 99, "ordinal": 77}],
            "zone_order": ["vault-room", "security", "ghost-zone"],
            "unassigned_facility_ids": ["dead-drop-network"],
        }
        layout = build_layout(SAFEHOUSE, saved, now=999)
        assert layout.source == "custom"
        assert layout.updated_at == 123
        assert layout.zone_order == ("vault-room", "security", "operations", "logistics", "support")
        vault = next(z for z in layout.zones if z.id == "vault-room")
        assert vault.facility_ids == ("crash-cots",)
        assert vault.label == "Vault Room"
        assert vault.defense_score == 20
        assert vault.ordinal == 50
        assert layout.unassigned_facility_ids == ("dead-drop-network",)
        assert layout.assignments_by_facility["dead-drop-network"] == "unassigned"
        _assert_partition(layout, FACILITIES)

    def test_assignments_win_over_zone_membership(self):
        saved = {
            "assignments_by_facility": {"crash-cots": "security"},
            "zones": [{"id": "operations", "facility_ids": ["crash-cots"]}],
        }
        layout = build_layout(SAFEHOUSE, saved)
        assert layout.assignments_by_facility["crash-cots"] == "security"

    def test_custom_without_timestamp_is_heuristic(self):
        layout = build_layout(SAFEHOUSE, {"source": "custom"}, now=55)
        assert layout.source == "heuristic"
        assert layout.updated_at == 55

    def test_stale_saved_facilities_are_dropped(self):
        saved = {"zones": [{"id": "security", "facility_ids": ["demolished-bay", "rapid-response-shed"]}]}
        layout = build_layout(SAFEHOUSE, saved)
        _assert_partition(layout, FACILITIES)
        assert "demolished-bay" not in layout.assignments_by_facility

    @pytest.mark.parametrize("saved", GARBAGE_LAYOUTS)
    def test_partition_holds_for_garbage(self, saved):
        layout = build_layout(SAFEHOUSE, saved, now=1)
        _assert_partition(layout, FACILITIES)

    def test_empty_safehouse(self):
        layout = build_layout(None, now=1)
        assert len(layout.zones) == 4
        assert all(not z.facility_ids for z in layout.zones)


# ---------------------------------------------------------------------------
# Escalation and recommendations
# ---------------------------------------------------------------------------


class TestEscalation:
    @pytest.mark.parametrize("tier, values", [("calm", [1, 1]), ("alert", [2, 1]), ("lockdown", [3, 2]), ("unknown", [1, 1])])
    def test_default_tracks(self, tier, values):
        tracks = build_escalation_tracks(None, heat_tier=tier)
        assert [t.id for t in tracks] == ["perimeter-pressure", "systems-integrity"]
        assert [t.value for t in tracks] == values

    def test_accumulates_and_caps(self):
        tracks = build_escalation_tracks(None, heat_tier="lockdown")
        tracks = build_escalation_tracks(tracks, heat_tier="lockdown")
        assert [t.value for t in tracks] == [6, 4]
        assert tracks[0].status == "escalating"
        tracks = build_escalation_tracks(tracks, heat_tier="lockdown")
        assert tracks[0].value == 6

    def test_malformed_tracks_fall_back_to_defaults(self):
        tracks = build_escalation_tracks([None, "x", {"label": "no id"}], heat_tier="calm")
        assert [t.id for t in tracks] == ["perimeter-pressure", "systems-integrity"]

    def test_fortify_weakest_zone(self):
        layout = build_layout(SAFEHOUSE, {"zones": [{"id": "security", "defense_score": 5}]})
        actions = build_recommended_actions(layout, build_escalation_tracks(None))
        assert [a.id for a in actions] == ["fortify-operations"]
        assert actions[0].summary == "Operations Deck hosts 1 facilities – reinforce patrols and counter-surveillance."

    def test_empty_zone_summary_says_no(self):
        layout = build_layout(None)
        actions = build_recommended_actions(layout, [])
        assert actions[0].summary.startswith("Logistics Wing hosts no facilities")

    def test_stabilize_hot_track(self):
        layout = build_layout(SAFEHOUSE)
        tracks = [EscalationTrack(id="perimeter-pressure", label="Perimeter Pressure", value=5, max=6)]
        actions = build_recommended_actions(layout, tracks)
        assert [a.id for a in actions] == ["fortify-logistics", "stabilize-perimeter-pressure"]
        assert actions[1].summary == "Perimeter Pressure is at 5/6. Deploy countermeasures now to avoid a breach."

    def test_no_layout_no_actions(self):
        assert build_recommended_actions(None, []) == []


# ---------------------------------------------------------------------------
# Scenario lifecycle
# ---------------------------------------------------------------------------


@pytest.fixture
def manager(game_state):
    return create_safehouse_defense_manager(game_state)


class TestDefenseManager:
    def test_activate_creates_scenario(self, manager, game_state):
        scenario = manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, heat_tier="lockdown", now=1000)
        assert scenario.status == "active"
        assert scenario.alert_id == ALERT["id"]
        assert scenario.safehouse_id == "sh-1"
        assert scenario.cooldown_days == 2
        assert [t.value for t in scenario.escalation_tracks] == [3, 2]
        assert [a.id for a in scenario.recommended_actions] == ["fortify-logistics"]
        assert "sh-1" in game_state[DEFENSE_STATE_KEY]["layouts_by_safehouse"]
        assert isinstance(game_state[DEFENSE_STATE_KEY]["scenarios_by_alert"][ALERT["id"]], dict)

    def test_reactivation_accumulates_pressure(self, manager):
        manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, heat_tier="lockdown", now=1000)
        scenario = manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, heat_tier="lockdown", now=2000)
        assert scenario.started_at == 1000
        assert scenario.updated_at == 2000
        assert [t.value for t in scenario.escalation_tracks] == [6, 4]
        assert [a.id for a in scenario.recommended_actions] == ["fortify-logistics", "stabilize-perimeter-pressure"]
        assert manager.get_scenario_summary_lines(ALERT["id"]) == [
            "Perimeter Pressure: 6/6 pressure (escalating)",
            "Systems Integrity: 4/6 pressure (active)",
            "Recommended actions: Fortify Logistics Wing, Stabilize Perimeter Pressure",
            "Cooldown once resolved: 2 days.",
        ]

    def test_record_resolution(self, manager, game_state):
        manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, heat_tier="alert", now=1000)
        scenario = manager.record_resolution(ALERT, {"id": "purge"}, summary="Drops purged", resolved_at=5000)
        assert scenario.status == "cooldown"
        assert scenario.resolved_at == 5000
        assert scenario.last_choice_id == "purge"
        assert scenario.last_summary == "Drops purged"
        assert [t.value for t in scenario.escalation_tracks] == [1, 0]
        assert all(t.status == "stabilizing" for t in scenario.escalation_tracks)
        assert len(scenario.history) == 1
        assert game_state[DEFENSE_STATE_KEY]["history"][-1]["alert_id"] == ALERT["id"]

    def test_resolution_idempotent_for_same_timestamp(self, manager, game_state):
        manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=1000)
        manager.record_resolution(ALERT, "purge", summary="first", resolved_at=5000)
        scenario = manager.record_resolution(ALERT, "purge", summary="second", resolved_at=5000)
        assert len(scenario.history) == 1
        assert scenario.history[0].summary == "second"
        assert len(game_state[DEFENSE_STATE_KEY]["history"]) == 1
        scenario = manager.record_resolution(ALERT, "purge", resolved_at=6000)
        assert len(scenario.history) == 2

    def test_history_caps(self, manager, game_state):
        manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=1)
        for i in range(25):
            manager.record_resolution(ALERT, "purge", resolved_at=100 + i)
        assert len(manager.get_scenario(ALERT["id"]).history) == 6
        assert len(game_state[DEFENSE_STATE_KEY]["history"]) == 20

    def test_reactivation_keeps_last_choice(self, manager):
        manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=1)
        manager.record_resolution(ALERT, "purge", summary="done", resolved_at=10)
        scenario = manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=20)
        assert scenario.status == "active"
        assert scenario.resolved_at is None
        assert scenario.last_choice_id == "purge"
        assert len(scenario.history) == 1

    def test_custom_layout_feeds_next_activation(self, manager):
        assert manager.save_custom_layout("sh-1", {"assignments_by_facility": {"crash-cots": "security"}}, now=77)
        scenario = manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=100)
        assert scenario.layout.source == "custom"
        assert scenario.layout.updated_at == 77
        assert scenario.layout.assignments_by_facility["crash-cots"] == "security"

    def test_snapshots_are_frozen_copies(self, manager, game_state):
        scenario = manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=1)
        with pytest.raises(ValidationError):
            scenario.status = "cooldown"
        game_state[DEFENSE_STATE_KEY]["scenarios_by_alert"][ALERT["id"]]["status"] = "cooldown"
        assert scenario.status == "active"

    @pytest.mark.parametrize(
        "argument, alert_days, expected",
        [
            (1.4, 3, 1),
            (99, 2, 30),
            (-3, 2, 0),
            ("soon", 2, 2),
            (None, "soon", None),
            (float("nan"), None, None),
            (True, 3, 3),
        ],
    )
    def test_cooldown_days_coerced(self, manager, argument, alert_days, expected):
        alert = {"id": "a-1", "cooldown_days": alert_days}
        scenario = manager.activate_scenario(alert, safehouse=SAFEHOUSE, cooldown_days=argument, now=1)
        assert scenario is not None
        assert scenario.cooldown_days == expected
        assert manager.get_scenario("a-1").cooldown_days == expected
        assert manager.record_resolution(alert, "purge", resolved_at=10).status == "cooldown"
        assert manager.get_scenario_summary_lines("a-1")

    def test_corrupt_stored_cooldown_is_repaired(self, manager, game_state):
        manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=1)
        stored = game_state[DEFENSE_STATE_KEY]["scenarios_by_alert"][ALERT["id"]]
        stored["cooldown_days"] = "soon"
        assert manager.get_scenario(ALERT["id"]).cooldown_days is None
        assert stored["cooldown_days"] is None
        scenario = manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=2)
        assert scenario.cooldown_days == 2
        assert scenario.started_at == 1

    def test_malformed_stored_scenario_logs_context(self, manager, game_state, caplog):
        manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=1)
        game_state[DEFENSE_STATE_KEY]["scenarios_by_alert"][ALERT["id"]]["status"] = "burning"
        with caplog.at_level(logging.WARNING, logger="backend.app.core.error_handling"):
            assert manager.get_scenario(ALERT["id"]) is None
        records = [r for r in caplog.records if getattr(r, "operation", None) == "defense.snapshot"]
        assert len(records) == 1
        assert records[0].levelno == logging.WARNING
        assert records[0].alert_id == ALERT["id"]
        assert records[0].safehouse_id == "sh-1"
        assert "alert_id=safehouse-dead-drop-compromise" in records[0].getMessage()

    def test_missing_ids(self, manager):
        assert manager.activate_scenario({}, safehouse=SAFEHOUSE) is None
        assert manager.get_scenario("unknown") is None
        assert manager.get_scenario_summary_lines("unknown") == []
        assert manager.record_resolution({"id": "unknown"}, "x") is None

    def test_malformed_state_is_coerced(self):
        state = {DEFENSE_STATE_KEY: "corrupt"}
        manager = create_safehouse_defense_manager(state)
        assert manager.activate_scenario(ALERT, safehouse=SAFEHOUSE, now=1) is not None
        assert isinstance(state[DEFENSE_STATE_KEY]["scenarios_by_alert"], dict)

    @pytest.mark.parametrize("state", [None, [], "state"])
    def test_non_dict_state_is_inert(self, state):
        manager = create_safehouse_defense_manager(state)
        assert manager.activate_scenario(ALERT, safehouse=SAFEHOUSE) is None
        assert manager.get_scenario(ALERT["id"]) is None
        assert manager.get_scenario_summary_lines(ALERT["id"]) == []
        assert manager.record_resolution(ALERT, "purge") is None
        assert manager.save_custom_layout("sh-1", {}) is False


def test_summary_lines_for_missing_scenario():
    assert build_scenario_summary_lines(None) == []
