"""Helpers for reading opaque collaborator records (mission, safehouse, crew).

Records may be plain dicts or objects; hook methods are optional capabilities
and every caller keeps a field-mutation fallback.
"""
from __future__ import annotations

import math
import time
from collections.abc import Mapping
from typing import Any


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def read_field(record: Any, *names: str, default: Any = None) -> Any:
    """Return the first non-None field among names (dict key or attribute)."""
    if record is None:
        return default
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value is not None:
            return value
    return default


def write_field(record: Any, name: str, value: Any) -> None:
    if isinstance(record, dict):
        record[name] = value
    else:
        setattr(record, name, value)


def get_hook(record: Any, name: str):
    """Return a callable hook on record, or None when the record lacks it."""
    if record is None or isinstance(record, Mapping):
        return None
    hook = getattr(record, name, None)
    return hook if callable(hook) else None


def to_finite(value: Any, fallback: float = 0.0) -> float:
    """Coerce to a finite float; bools and non-numerics fall back."""
    if isinstance(value, bool) or value is None:
        return fallback
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return fallback
    return numeric if math.isfinite(numeric) else fallback


def clamp(value: float, lo: float, hi: float) -> float:
    if not math.isfinite(value):
        return lo
    return max(lo, min(hi, value))


def normalize_id(value: Any) -> str | None:
    """Trimmed string id, or None for missing/blank values."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def prettify_id(value: str | None) -> str:
    """'ghost-terminal-core' -> 'Ghost Terminal Core'."""
    if not value or not isinstance(value, str):
        return ""
    return " ".join(part[:1].upper() + part[1:] for part in value.split("-") if part)
