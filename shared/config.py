"""Shared configuration constants used by the engine core and the CLI."""
from __future__ import annotations

import os
from pathlib import Path


def _env_flag(name: str, default: bool = False) -> bool:
    """Read boolean env flag."""
    val = os.environ.get(name, "").strip().lower()
    if not val:
        return default
    return val in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    """Read a float env value; fall back to default when unset or unparsable."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Project root: resolve relative to this file's location
_PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Static YAML tables ship inside the package; point CARTHIEF_TABLES_DIR at a copy to mod them
_PACKAGED_TABLES_DIR = _PROJECT_ROOT / "backend" / "app" / "content" / "tables"
TABLES_DIR = Path(os.environ.get("CARTHIEF_TABLES_DIR", str(_PACKAGED_TABLES_DIR)))

# Table validation: lenient mode logs and skips malformed rows instead of failing the whole table
TABLES_LENIENT_VALIDATION = _env_flag("CARTHIEF_TABLES_LENIENT", default=True)

LOG_LEVEL = os.environ.get("CARTHIEF_LOG_LEVEL", "WARNING").strip().upper() or "WARNING"
