"""Loaded static tables, kept for the life of the process.

Each table is built on first request and reused afterwards. Tests drop the
whole registry between cases so env overrides of the tables dir take effect.
"""
from __future__ import annotations

from typing import Any, Callable, TypeVar

T = TypeVar("T")

_TABLES: dict[str, Any] = {}


def cached_table(name: str, build: Callable[[], T]) -> T:
    """Table registered under name, built by build() the first time it is asked for."""
    try:
        return _TABLES[name]
    except KeyError:
        table = _TABLES[name] = build()
        return table


def loaded_table_names() -> list[str]:
    return sorted(_TABLES)


def reset_tables() -> None:
    _TABLES.clear()
