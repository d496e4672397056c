"""Pytest setup: fresh table cache per test and a shared game-state container."""
from __future__ import annotations

import pytest

from shared.cache import reset_tables


@pytest.fixture(autouse=True)
def _fresh_tables():
    """Tables are memoized process-wide; tests that swap TABLES_DIR need a clean slate."""
    reset_tables()
    yield
    reset_tables()


@pytest.fixture
def game_state() -> dict:
    return {"funds": 10_000, "crew": []}


class FakeClock:
    """Injectable epoch-ms clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance_hours(self, hours: float) -> None:
        self.now += int(hours * 60 * 60 * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
