"""Tests for the YAML content tables and the crew record model."""
from __future__ import annotations

import pytest

from backend.app.content.loader import (
    load_facility_effects,
    load_incursion_profiles,
    load_mission_events,
    load_relationship_tables,
    load_storylines,
)
from backend.app.core.error_handling import TableLoadError
from backend.app.models.crew import CrewMember
from shared import config as shared_config
from shared.cache import loaded_table_names, reset_tables

MISSION_EVENTS_YAML = """
events:
  - id: good-event
    label: Good Event
    choices:
      - id: good-event-a
        label: Take it
  - id: broken-event
  - id: good-event
    label: Duplicate
"""


@pytest.fixture
def tables_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(shared_config, "TABLES_DIR", tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Packaged tables
# ---------------------------------------------------------------------------


class TestPackagedTables:
    def test_every_table_loads(self):
        assert len(load_mission_events()) >= 8
        profiles = load_incursion_profiles()
        assert profiles.facility_profiles and profiles.heat_profiles
        assert "ghost-terminal" in load_facility_effects()
        tables = load_relationship_tables()
        assert set(tables.bands) == {"synergy", "strain"}
        assert [a.id for a in tables.arcs] == ["bonding-hangout", "cross-training", "rivalry-summit"]
        assert "default" in load_storylines()

    def test_event_ids_are_unique_and_have_choices(self):
        events = load_mission_events()
        assert len({e.id for e in events}) == len(events)
        assert all(len(e.choices) >= 2 for e in events)

    def test_tables_are_memoized(self):
        assert load_mission_events() is load_mission_events()
        first = load_storylines()
        assert loaded_table_names() == ["mission_events", "storylines"]
        reset_tables()
        assert loaded_table_names() == []
        assert load_storylines() is not first


# ---------------------------------------------------------------------------
# Custom table dirs
# ---------------------------------------------------------------------------


class TestCustomTablesDir:
    def test_missing_file_raises(self, tables_dir):
        with pytest.raises(TableLoadError) as exc:
            load_mission_events()
        assert exc.value.table == "mission_events"

    def test_non_mapping_raises(self, tables_dir):
        (tables_dir / "mission_events.yaml").write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(TableLoadError, match="must contain a mapping"):
            load_mission_events()

    def test_invalid_yaml_raises(self, tables_dir):
        (tables_dir / "mission_events.yaml").write_text("events: [unclosed\n", encoding="utf-8")
        with pytest.raises(TableLoadError, match="invalid YAML"):
            load_mission_events()

    def test_lenient_mode_skips_bad_rows(self, tables_dir, monkeypatch):
        monkeypatch.setattr(shared_config, "TABLES_LENIENT_VALIDATION", True)
        (tables_dir / "mission_events.yaml").write_text(MISSION_EVENTS_YAML, encoding="utf-8")
        events = load_mission_events()
        assert [e.id for e in events] == ["good-event"]
        assert events[0].label == "Good Event"

    def test_strict_mode_raises_on_bad_row(self, tables_dir, monkeypatch):
        monkeypatch.setattr(shared_config, "TABLES_LENIENT_VALIDATION", False)
        (tables_dir / "mission_events.yaml").write_text(MISSION_EVENTS_YAML, encoding="utf-8")
        with pytest.raises(TableLoadError, match="broken-event"):
            load_mission_events()

    def test_yml_extension_accepted(self, tables_dir):
        (tables_dir / "facility_effects.yml").write_text(
            "facilities:\n  test-bay:\n    name: Test Bay\n    passive_income_bonus: 5\n", encoding="utf-8"
        )
        assert load_facility_effects()["test-bay"].passive_income_bonus == 5

    def test_storylines_need_default(self, tables_dir):
        (tables_dir / "storylines.yaml").write_text("storylines:\n  racer: []\n", encoding="utf-8")
        with pytest.raises(TableLoadError, match="default"):
            load_storylines()


# ---------------------------------------------------------------------------
# CrewMember hooks
# ---------------------------------------------------------------------------


class TestCrewMember:
    def test_loyalty_clamped(self):
        member = CrewMember(id="c1", loyalty=4)
        member.adjust_loyalty(3)
        assert member.loyalty == 5
        member.adjust_loyalty(-9)
        assert member.loyalty == 0

    @pytest.mark.parametrize("amount", [None, "x", float("nan"), 0])
    def test_ignored_amounts(self, amount):
        member = CrewMember(id="c1", loyalty=2)
        member.adjust_loyalty(amount)
        member.adjust_trait("tech", amount)
        assert member.loyalty == 2
        assert member.traits == {}

    def test_affinity_clamped(self):
        member = CrewMember(id="c1")
        member.adjust_affinity_for_crewmate("c2", 250)
        assert member.affinity == {"c2": 100}

    def test_unknown_trait_ignored(self):
        member = CrewMember(id="c1")
        member.adjust_trait("juggling", 1)
        member.adjust_trait("tech", 9)
        assert member.traits == {"tech": 6}

    def test_perks_and_story_steps_deduplicated(self):
        member = CrewMember(id="c1")
        member.add_perk("Ghost Lines")
        assert member.add_perk("Ghost Lines") == ["Ghost Lines"]
        member.mark_story_step_complete("step-1")
        assert member.mark_story_step_complete("step-1") == ["step-1"]
