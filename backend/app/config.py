"""Engine config: relationship cooldowns and table locations, with env overrides.

Band cooldowns default to the values in relationship_events.yaml. Override per band
with CARTHIEF_{BAND}_COOLDOWN_HOURS (e.g. CARTHIEF_SYNERGY_COOLDOWN_HOURS=6 for playtests).
"""
from __future__ import annotations

import logging
import os

from shared.config import (
    LOG_LEVEL,
    TABLES_DIR,
    TABLES_LENIENT_VALIDATION,
    _env_float,
)

logger = logging.getLogger(__name__)

MS_PER_HOUR = 1000 * 60 * 60


def band_cooldown_ms(band: str, default_hours: float) -> int:
    """Cooldown for a relationship band in ms; env override wins over the table value."""
    env_key = f"CARTHIEF_{band.strip().upper()}_COOLDOWN_HOURS"
    hours = _env_float(env_key, default_hours)
    if hours < 0:
        hours = 0
    return int(round(hours * MS_PER_HOUR))


def _log_resolved_config() -> None:
    """Log resolved engine config at startup."""
    overrides = sorted(k for k in os.environ if k.startswith("CARTHIEF_"))
    logger.debug(
        "Engine config: tables_dir=%s lenient=%s log_level=%s overrides=%s",
        TABLES_DIR,
        TABLES_LENIENT_VALIDATION,
        LOG_LEVEL,
        overrides or "none",
    )


_log_resolved_config()
