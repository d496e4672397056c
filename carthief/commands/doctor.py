"""``carthief doctor`` – load and validate every static table."""
from __future__ import annotations

import sys

from backend.app.content.loader import (
    load_facility_effects,
    load_incursion_profiles,
    load_mission_events,
    load_relationship_tables,
    load_storylines,
)
from backend.app.core.error_handling import TableLoadError, log_error_with_context
from shared.cache import loaded_table_names
from shared.config import TABLES_DIR, TABLES_LENIENT_VALIDATION

# ANSI helpers (no-op on dumb terminals)
_COLOR = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _ok(msg: str) -> str:
    return f"  [OK]   {msg}" if not _COLOR else f"  \033[32m[OK]\033[0m   {msg}"


def _fail(msg: str) -> str:
    return f"  [FAIL] {msg}" if not _COLOR else f"  \033[31m[FAIL]\033[0m {msg}"


def register(subparsers) -> None:
    p = subparsers.add_parser("doctor", help="Validate the static event tables")
    p.set_defaults(func=run)


def _count_mission_events() -> str:
    return f"{len(load_mission_events())} mission events"


def _count_incursions() -> str:
    tables = load_incursion_profiles()
    return f"{len(tables.facility_profiles)} facility / {len(tables.heat_profiles)} heat incursion profiles"


def _count_facilities() -> str:
    return f"{len(load_facility_effects())} facility effects"


def _count_relationships() -> str:
    tables = load_relationship_tables()
    return f"{len(tables.bands)} relationship bands, {len(tables.arcs)} arcs"


def _count_storylines() -> str:
    storylines = load_storylines()
    steps = sum(len(s) for s in storylines.values())
    return f"{len(storylines)} storylines, {steps} steps"


CHECKS = (
    ("mission_events", _count_mission_events),
    ("incursion_profiles", _count_incursions),
    ("facility_effects", _count_facilities),
    ("relationship_events", _count_relationships),
    ("storylines", _count_storylines),
)


def run(args) -> int:
    print("Car Thief Doctor")
    print(f"  tables: {TABLES_DIR} (lenient={TABLES_LENIENT_VALIDATION})")
    failures = 0
    for table, check in CHECKS:
        try:
            print(_ok(check()))
        except TableLoadError as e:
            log_error_with_context(e, "cli.doctor", table=table)
            print(_fail(str(e)))
            failures += 1
    print(f"  loaded: {len(loaded_table_names())}/{len(CHECKS)} tables")
    return 1 if failures else 0
